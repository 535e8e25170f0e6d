"""File classification and text extraction for chat attachments.

Browsers and upload clients report unreliable MIME types, so files are
classified by extension and well-known file name first.
"""

import base64
from dataclasses import dataclass

# Source-code extensions. A text attachment with one of these counts as code.
CODE_EXTENSIONS = frozenset({
    "ts", "tsx", "js", "jsx", "mjs", "cjs", "mts", "cts",
    "py", "pyw", "rb", "go", "rs", "java", "kt", "kts",
    "c", "h", "cpp", "hpp", "cc", "cxx", "cs", "swift",
    "php", "pl", "pm", "r", "scala", "clj", "cljs",
    "lua", "dart", "elm", "ex", "exs", "erl", "hrl",
    "hs", "lhs", "v", "sv", "vhd", "vhdl",
    "sh", "bash", "zsh", "fish", "bat", "cmd", "ps1",
    "css", "scss", "sass", "less", "styl",
    "graphql", "gql", "proto", "sql", "ddl", "dml",
    "html", "htm", "vue", "svelte",
})

# Everything readable as text, including the code extensions
TEXT_EXTENSIONS = CODE_EXTENSIONS | frozenset({
    "xml", "xhtml", "svg",
    "json", "jsonl", "ndjson", "json5",
    "yaml", "yml", "toml", "ini", "cfg", "conf",
    "csv", "tsv",
    "md", "mdx", "markdown", "txt", "text", "rst", "adoc",
    "tex", "latex", "bib",
    "env", "gitignore", "gitattributes", "dockerignore",
    "editorconfig", "prettierrc", "eslintrc",
    "dockerfile", "makefile", "rakefile", "gemfile",
    "log",
})

# Extension-less files that are still text
TEXT_FILENAMES = frozenset({
    "dockerfile", "makefile", "rakefile", "gemfile",
    "procfile", "brewfile", "vagrantfile",
    ".gitignore", ".gitattributes", ".dockerignore",
    ".editorconfig", ".prettierrc", ".eslintrc",
    ".babelrc", ".npmrc", ".nvmrc", ".yarnrc",
    "license", "licence", "readme", "changelog",
    "authors", "contributors", "todo", "copying",
})

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "ico"})

TEXT_CONTENT_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "application/typescript",
})

# ~120K chars is roughly 30-40K tokens
DEFAULT_MAX_TEXT_CHARS = 120_000


@dataclass
class FileTextResult:
    """Result of text extraction from a file."""

    text: str
    detected_encoding: str
    truncated: bool = False
    original_length: int = 0


def get_extension(filename: str) -> str:
    """Lowercase extension without the dot, or '' when there is none."""
    parts = filename.split(".")
    if len(parts) < 2:
        return ""
    return parts[-1].lower()


def is_code_file(filename: str) -> bool:
    return get_extension(filename) in CODE_EXTENSIONS


def is_text_file(filename: str, content_type: str | None = None) -> bool:
    """Decide whether a file can be inlined as text."""
    if get_extension(filename) in TEXT_EXTENSIONS:
        return True
    if filename.lower() in TEXT_FILENAMES:
        return True

    content_type = (content_type or "").lower()
    return content_type.startswith("text/") or content_type in TEXT_CONTENT_TYPES


def is_image_file(filename: str, content_type: str | None = None) -> bool:
    return (content_type or "").lower().startswith("image/") or (
        get_extension(filename) in IMAGE_EXTENSIONS
    )


def is_pdf_file(filename: str, content_type: str | None = None) -> bool:
    return (content_type or "").lower() == "application/pdf" or get_extension(filename) == "pdf"


def _decode_bytes(raw_bytes: bytes) -> tuple[str, str]:
    """
    Attempt to decode bytes using fallback chain.

    Returns:
        Tuple of (decoded_text, encoding_name)

    Raises:
        ValueError: If no encoding works
    """
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        try:
            return raw_bytes.decode("utf-8-sig"), "utf-8-sig"
        except UnicodeDecodeError:
            pass

    for encoding in ("utf-8", "latin-1"):
        try:
            return raw_bytes.decode(encoding), encoding
        except UnicodeDecodeError:
            continue

    raise ValueError(
        "Unable to decode file content. Supported encodings: UTF-8, UTF-8-BOM, Latin-1."
    )


def limit_text(text: str, max_length: int = DEFAULT_MAX_TEXT_CHARS) -> tuple[str, bool]:
    """
    Keep the head (80%) and tail (15%) of oversized text, eliding the middle.

    Returns:
        Tuple of (possibly shortened text, was_truncated)
    """
    if len(text) <= max_length:
        return text, False

    head_size = int(max_length * 0.80)
    tail_size = int(max_length * 0.15)
    omitted = len(text) - head_size - tail_size
    marker = f"\n\n[... middle of the file omitted (about {omitted:,} chars) ...]\n\n"
    return text[:head_size] + marker + text[-tail_size:], True


def extract_text(
    raw_bytes: bytes,
    max_length: int = DEFAULT_MAX_TEXT_CHARS,
) -> FileTextResult:
    """
    Decode attachment bytes and apply the size limit.

    Raises:
        ValueError: If content cannot be decoded
    """
    text, encoding = _decode_bytes(raw_bytes)
    limited, truncated = limit_text(text, max_length)
    return FileTextResult(
        text=limited,
        detected_encoding=encoding,
        truncated=truncated,
        original_length=len(text),
    )


def format_attached_file(filename: str, size_bytes: int, result: FileTextResult) -> str:
    """Wrap extracted text in the attachment marker the orchestrator scans for."""
    note = ""
    if result.truncated:
        note = f' note="original {result.original_length:,} chars, partially omitted"'
    return "\n".join([
        f'<attached_file name="{filename}" size="{size_bytes / 1024:.1f}KB"{note}>',
        result.text,
        "</attached_file>",
    ])


def to_data_url(raw_bytes: bytes, content_type: str) -> str:
    """Encode bytes as a base64 data URL (images and PDFs)."""
    encoded = base64.b64encode(raw_bytes).decode("ascii")
    return f"data:{content_type};base64,{encoded}"
