"""kudash library modules.

Configuration, the kuhex dump formatter and the psvis process tree support.
"""

__all__ = [
    "config_parser",
    "hexdump",
    "process_tree",
]
