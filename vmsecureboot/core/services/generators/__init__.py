"""
Generators — render the files this tool owns from fixed templates.

Each generator module exposes a ``generate()`` function that returns
a list of ``GeneratedFile`` instances.
"""
