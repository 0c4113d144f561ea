"""Allow ``python -m notion_mcp_access``."""

from .mcp_server import main

if __name__ == "__main__":
    main()
