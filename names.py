"""Pure helpers deriving display names and platform library file names."""

from typing import Dict

_LIBRARY_EXTENSIONS = (".dll", ".so", ".dylib")

_C_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def base_name_of(path: str) -> str:
    """Strips every directory component, accepting both '/' and '\\' as separators."""
    cut = max(path.rfind("/"), path.rfind("\\"))
    return path[cut + 1:]


def library_base_name(user_input: str) -> str:
    """
    Reduces a user supplied library name to its logical base name.

    The leading 'lib' prefix and a trailing '.dll', '.so' or '.dylib' extension
    are stripped independently, so 'libfoo.so', 'foo.dll', 'libfoo' and 'foo'
    all yield 'foo'.
    """
    name = user_input.strip()
    if name.startswith("lib"):
        name = name[3:]
    lowered = name.lower()
    for extension in _LIBRARY_EXTENSIONS:
        if lowered.endswith(extension):
            name = name[:-len(extension)]
            break
    return name


def library_file_names(base_name: str) -> Dict[str, str]:
    return {
        "windows": f"{base_name}.dll",
        "linux": f"lib{base_name}.so",
        "darwin": f"lib{base_name}.dylib",
    }


def c_string_literal(text: str) -> str:
    """Escapes text for use between the quotes of a C string literal."""
    return "".join(_C_ESCAPES.get(ch, ch) for ch in text)
