"""MCP server for jobsync: stdio transport, tool registry and lifespan."""
