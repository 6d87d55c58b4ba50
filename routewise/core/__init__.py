"""Core orchestration package.

Architectural role:
    Exposes the request-orchestration layer that sits between API/CLI entrypoints
    and lower-level subsystems (parsing, registry, routing, validation and
    learning).

Composition:
    - `engine`: `RoutewiseEngine`, the pipeline owner.
    - `types`: Shared data contracts passed between stages.
    - `errors`: Typed pipeline failures.
    - `settings`: Environment-backed configuration.
    - `periodic`: Background sweep task helper.

Determinism and side effects:
    Package import itself is deterministic and side-effect free apart from
    `settings` loading `.env`. Runtime side effects are performed by `engine`
    during request processing.
"""
