"""
MCP: expose Codag signals to coding agents.

- bridge: stdio MCP server with the codag_brief and codag_check tools
- config_writer: merge the codag server entry into editor config files
"""

from .config_writer import WriteResult, codag_entry, write_all, write_root_config

__all__ = ["WriteResult", "codag_entry", "write_all", "write_root_config"]
