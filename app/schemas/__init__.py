import importlib
from pathlib import Path

# re-export the public names of every schema module
current_dir = Path(__file__).parent
py_files = [
    f.stem for f in current_dir.glob("*.py")
    if f.is_file() and f.stem != "__init__"
]

for module_name in py_files:
    module = importlib.import_module(f".{module_name}", package="app.schemas")
    for attr in dir(module):
        if not attr.startswith("_"):
            globals()[attr] = getattr(module, attr)
