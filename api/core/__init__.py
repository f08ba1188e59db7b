"""
Shared, cross-cutting code for the API.

`core/` holds the request pipeline building blocks every resource uses
(settings, logging, DB pool, schema registry, sanitizer, route bindings,
error handling). Keep resource-specific SQL in `resources/` and identity
logic in `auth/`.
"""
