"""Support namespace for cross-cutting, dependency-light helpers.

Scope:
- Small, stateless helpers with minimal dependencies.
- No business rules, no engines, no wiring.

Import direction:
- May be imported by any annals package.
- Must not import from application packages.

Public API:
- Nothing is re-exported at the package level. Import specific helpers from
  their defining modules.
"""
