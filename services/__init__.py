"""HTTP clients for the map server."""
