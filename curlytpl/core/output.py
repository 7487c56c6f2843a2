# curlytpl/core/output.py
import sys
from pathlib import Path
import structlog
from curlytpl.exceptions import OutputError

log = structlog.get_logger(__name__)

def write_to_stdout(text_content: str):
    # writes rendered text to standard output.
    try:
        sys.stdout.write(text_content)
        sys.stdout.flush()
    except UnicodeEncodeError as e:
        log.warning("stdout_write_failed_trying_binary_fallback", error=str(e))
        try:
            sys.stdout.buffer.write(text_content.encode("utf-8", errors="replace"))
            sys.stdout.buffer.flush()
        except (AttributeError, OSError) as inner_e:
            raise OutputError(f"failed to write to stdout: {inner_e}") from inner_e
    except OSError as e:
        raise OutputError(f"failed to write to stdout: {e}") from e

def write_to_file(output_file_path: Path, text_content: str):
    # writes rendered text to the specified file path, creating parent directories.
    log.info("writing_output_to_file", path=str(output_file_path))
    try:
        output_file_path.parent.mkdir(parents=True, exist_ok=True)
        output_file_path.write_text(text_content, encoding="utf-8")
    except OSError as e:
        raise OutputError(f"failed to write to file '{output_file_path}': {e}") from e
