"""
Create a new mdbear project from the starter files shipped in ``defaults/``.
"""

import os
from importlib.resources import files
from typing import List

from .errors import ScaffoldError


def default_project_files():
    """Root of the packaged starter project."""
    return files('mdbear_pkg') / 'defaults'


def _copy_tree(source, destination: str, root: str) -> List[str]:
    created = []
    os.makedirs(destination, exist_ok=True)
    for item in sorted(source.iterdir(), key=lambda entry: entry.name):
        if item.name.startswith('__'):
            continue
        target = os.path.join(destination, item.name)
        if item.is_dir():
            created.extend(_copy_tree(item, target, root))
        else:
            with open(target, 'wb') as f:
                f.write(item.read_bytes())
            relative = os.path.relpath(target, root)
            print(f"  Creating: {relative}")
            created.append(relative)
    return created


def create_project(name: str) -> List[str]:
    """
    Create directory ``name`` holding a config, a theme and sample content.

    Args:
        name: Directory of the new project; must not exist yet

    Returns:
        Paths of the created files, relative to the new project

    Raises:
        ScaffoldError: if the directory already exists or cannot be written
    """
    root = os.path.abspath(name)
    if os.path.exists(root):
        raise ScaffoldError(f"Directory '{name}' already exists.")

    print(f"Initializing project: {name} ...")
    try:
        os.makedirs(root)
        created = _copy_tree(default_project_files(), root, root)
    except OSError as e:
        raise ScaffoldError(f"Failed to create project '{name}': {e}") from e

    print("\nProject initialized!")
    print("Next steps:")
    print(f"  cd {name}")
    print("  mdbear build")
    return created
