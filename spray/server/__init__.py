"""JSON-RPC websocket subscription server and metrics endpoint."""