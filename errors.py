class DelayLoadError(RuntimeError):
    """Base class for every failure that aborts a generation run."""


class ParseError(DelayLoadError):
    """libclang could not produce a translation unit for a header."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to parse header '{path}': {reason}")
        self.path = path
        self.reason = reason


class EmptyExtraction(DelayLoadError):
    """A header yielded no function that qualifies for wrapping."""

    def __init__(self, path: str):
        super().__init__(f"No exported functions found in header '{path}'")
        self.path = path


class SynthesisError(DelayLoadError):
    pass


class InvalidInput(SynthesisError):
    pass


class DuplicateSymbolError(SynthesisError):
    def __init__(self, name: str, first_header: str, second_header: str):
        super().__init__(
            f"Function '{name}' is declared in both '{first_header}' and '{second_header}'"
            " (use --dedupe to keep the first declaration)"
        )
        self.name = name


class OutputWriteError(DelayLoadError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot write output file '{path}': {reason}")
        self.path = path


class CompilationError(DelayLoadError):
    """The host compiler rejected a generated document."""

    def __init__(self, command, output: str):
        super().__init__(f"Compiler command failed: {' '.join(command)}\n{output}")
        self.command = list(command)
        self.output = output
