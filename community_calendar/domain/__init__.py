"""Domain services: data store, event lifecycle and user deletion."""
