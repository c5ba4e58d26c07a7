"""
Application package.

``main`` assembles the FastAPI app.  The remaining subpackages follow the
request path: ``api`` parses requests and maps errors to status codes,
``services`` orchestrates, ``storage`` talks to the database and ``core``
holds configuration, logging, the connection pool and the error types.
"""
