"""SwarmDesk HTTP server: stores, execution pipeline and API routers."""
