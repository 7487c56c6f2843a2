class CurlyTplError(Exception):
    # base exception for all application-specific errors.
    pass

class ConfigError(CurlyTplError):
    # errors related to configuration.
    pass

class TemplateNotFound(CurlyTplError):
    # the template exists in no search root, raw or compiled.
    pass

class EmptySource(CurlyTplError):
    # the raw template is empty or unreadable; no artifact is produced.
    pass

class CompileWriteError(CurlyTplError):
    # the compiled artifact could not be persisted.
    pass

class TemplateSyntaxError(CurlyTplError):
    # directive structure that cannot be turned into an artifact.
    def __init__(self, message: str, template: str | None = None, line: int | None = None):
        self.template = template
        self.line = line
        location = ""
        if template:
            location = f" ({template}" + (f", line {line}" if line else "") + ")"
        super().__init__(f"{message}{location}")

class IncludeDepthError(TemplateSyntaxError):
    # include/inline expansion did not settle within the configured depth.
    pass

class TemplateRenderError(CurlyTplError):
    # errors raised while executing a compiled artifact.
    pass

class RenderTimeout(TemplateRenderError):
    # the render deadline passed before the render finished.
    pass

class OutputError(CurlyTplError):
    # errors during output operations.
    pass
