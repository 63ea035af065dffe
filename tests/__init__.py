"""annals test suite.

Folder taxonomy
- unit/         : Isolated, fast checks of a single module/class/function.
- contract/     : Behavior shared by every EventPersistence implementation.
- integration/  : Real SQLite files, Alembic migrations and the wiring in bootstrap.
- e2e/          : The `annals` CLI driven through click's CliRunner.
- fixtures/     : Shared pytest plugins (engines, event builders); no tests here.

General guidance
- Keep unit fast and deterministic; prefer the in-memory store over mocks.
- Contract tests parametrize implementations to ensure consistent behavior.
- Property-based tests live with the layer they exercise and use hypothesis.
- Markers: unit, contract, integration, slow, e2e
"""
