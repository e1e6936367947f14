"""OAuth 2.1 authorization front end backed by an external decision engine."""
