# Request handlers for the license endpoints
