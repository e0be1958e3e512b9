"""musegen-serve: generation queue backend and HTTP/WebSocket server."""
