"""HTTP surface: routers, middleware, dependencies and error handlers."""
