import os
import sys

# lazylog is a single top-level module; make it importable without installing.
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _project_root)
