"""docgate: temporal access control and OIDC token bridge for a document backend."""
