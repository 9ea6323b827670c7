"""W-API compatible HTTP gateway over the session core."""
