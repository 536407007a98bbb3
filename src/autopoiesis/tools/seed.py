"""
Persisted seed of the tool registry.

The block between the ``tool-seed`` marker comments is rewritten wholesale every time the agent
commits new tools, so the accumulated tool set is loaded again on the next start.  Edit it by hand
only while the agent is stopped.
"""

# <tool-seed>
SEED_TOOLS = [
    {
        "name": "read_main_file",
        "description": "Reads the contents of the agent's persisted tool definition file",
        "implementation": "return Path(SOURCE_PATH).read_text(encoding='utf-8')\n",
    },
    {
        "name": "write_main_file",
        "description": "Writes content (arg0) to the agent's persisted tool definition file",
        "implementation": (
            "Path(SOURCE_PATH).write_text(arg0, encoding='utf-8')\n"
            "return 'File written successfully'\n"
        ),
    },
    {
        "name": "list_files",
        "description": "Lists all files in the current working directory",
        "implementation": "return sorted(os.listdir('.'))\n",
    },
]
# </tool-seed>
