"""Display session registry and push transports."""
