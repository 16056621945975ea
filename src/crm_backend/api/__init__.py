"""HTTP API of the CRM backend."""
