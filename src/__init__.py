"""Chat session logging into a shared Google Sheet, served over MCP."""
