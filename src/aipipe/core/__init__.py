"""Core building blocks: configuration, credentials, sessions, and the request pipeline."""
