"""
Lightweight SQL text handling for migration files.

This is not a SQL parser. It only knows enough lexical structure to:
- strip "--" line comments and "/* */" block comments
- find string literals ('...' or "...", with doubled-quote escaping)
- split a script into statements on ";" outside comments and strings
- keep CREATE TRIGGER ... BEGIN ... END bodies in one statement
- sanity-check parenthesis balance and string termination

Everything here is pure string processing, shared by the scanner (validation
before any database access) and the executor (statement splitting).
"""

import re
from collections.abc import Iterator

from ..exceptions import InvalidMigrationFileError

CODE = "code"
STRING = "string"
LINE_COMMENT = "line_comment"
BLOCK_COMMENT = "block_comment"
UNTERMINATED_STRING = "unterminated_string"

_CODE_TOKEN = re.compile(r";|[A-Za-z_][A-Za-z0-9_]*")

# CREATE [TEMP|TEMPORARY] TRIGGER ... TRIGGER is at most the third word
_TRIGGER_HEAD_WORDS = 3


def tokenize(sql: str) -> Iterator[tuple[str, str]]:
    """
    Split SQL text into (kind, text) segments.

    Kinds are CODE, STRING, LINE_COMMENT, BLOCK_COMMENT and
    UNTERMINATED_STRING (a quote that never closes; always the last segment).
    Concatenating all segment texts gives back the input.

    Example:
        >>> list(tokenize("SELECT 'a;b'; -- done"))
        [('code', 'SELECT '), ('string', "'a;b'"), ('code', '; '), ('line_comment', '-- done')]
    """
    i = 0
    code_start = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if ch == "-" and sql.startswith("--", i):
            if code_start < i:
                yield CODE, sql[code_start:i]
            end = sql.find("\n", i)
            if end == -1:
                end = length
            yield LINE_COMMENT, sql[i:end]
            i = code_start = end

        elif ch == "/" and sql.startswith("/*", i):
            if code_start < i:
                yield CODE, sql[code_start:i]
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            yield BLOCK_COMMENT, sql[i:end]
            i = code_start = end

        elif ch in ("'", '"'):
            if code_start < i:
                yield CODE, sql[code_start:i]
            close = _find_closing_quote(sql, i)
            if close == -1:
                yield UNTERMINATED_STRING, sql[i:]
                return
            yield STRING, sql[i : close + 1]
            i = code_start = close + 1

        else:
            i += 1

    if code_start < length:
        yield CODE, sql[code_start:]


def _find_closing_quote(sql: str, start: int) -> int:
    quote = sql[start]
    pos = start + 1
    while True:
        pos = sql.find(quote, pos)
        if pos == -1:
            return -1
        # A doubled quote is an escaped quote character, not the end
        if sql.startswith(quote * 2, pos):
            pos += 2
            continue
        return pos


def strip_comments(sql: str) -> str:
    """
    Remove comments, keeping code and string literals as written.

    Line comments are dropped up to (not including) the newline; block
    comments become a single space so adjacent tokens stay separated.
    """
    parts = []
    for kind, text in tokenize(sql):
        if kind == LINE_COMMENT:
            continue
        if kind == BLOCK_COMMENT:
            parts.append(" ")
            continue
        parts.append(text)
    return "".join(parts)


def clean_sql_for_validation(sql: str) -> str:
    """Strip comments, trim every line and join the non-empty lines with spaces."""
    lines = (line.strip() for line in strip_comments(sql).splitlines())
    return " ".join(line for line in lines if line)


def check_parentheses(sql: str) -> None:
    """
    Verify parentheses outside comments and string literals are balanced.

    Raises:
        InvalidMigrationFileError: "unmatched closing parenthesis" as soon as a
            ")" has no opener, or "unmatched opening parenthesis" if any "("
            is left open at the end
    """
    depth = 0
    for kind, text in tokenize(sql):
        if kind != CODE:
            continue
        for ch in text:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth < 0:
                    raise InvalidMigrationFileError("unmatched closing parenthesis")

    if depth != 0:
        raise InvalidMigrationFileError("unmatched opening parenthesis")


def check_string_literals(sql: str) -> None:
    """
    Verify every quoted string literal is closed.

    Raises:
        InvalidMigrationFileError: "unterminated string literal"
    """
    for kind, _text in tokenize(sql):
        if kind == UNTERMINATED_STRING:
            raise InvalidMigrationFileError("unterminated string literal")


def split_statements(sql: str) -> list[str]:
    """
    Split a SQL script into individual statements.

    Splits on ";" except inside comments, string literals and trigger bodies.
    Comments are removed from the returned statements, and whitespace-only
    statements are skipped. Terminating semicolons are not included.

    Example:
        >>> split_statements('''
        ... -- users; accounts
        ... CREATE TABLE users (id INT);
        ... INSERT INTO users VALUES (1); -- seed;
        ... ''')
        ['CREATE TABLE users (id INT)', 'INSERT INTO users VALUES (1)']
    """
    statements: list[str] = []
    current: list[str] = []
    head_words: list[str] = []
    block_depth = 0

    def flush() -> None:
        nonlocal block_depth
        statement = "".join(current).strip()
        if statement:
            statements.append(statement)
        current.clear()
        head_words.clear()
        block_depth = 0

    for kind, text in tokenize(sql):
        if kind == LINE_COMMENT:
            continue
        if kind == BLOCK_COMMENT:
            current.append(" ")
            continue
        if kind != CODE:
            current.append(text)
            continue

        pos = 0
        for match in _CODE_TOKEN.finditer(text):
            token = match.group(0)

            if token == ";":
                if block_depth == 0:
                    current.append(text[pos : match.start()])
                    pos = match.end()
                    flush()
                continue

            word = token.upper()
            if len(head_words) < _TRIGGER_HEAD_WORDS:
                head_words.append(word)

            if block_depth == 0:
                if word == "BEGIN" and _is_trigger(head_words):
                    block_depth = 1
            elif word in ("BEGIN", "CASE"):
                block_depth += 1
            elif word == "END":
                block_depth -= 1

        current.append(text[pos:])

    flush()
    return statements


def _is_trigger(head_words: list[str]) -> bool:
    return bool(head_words) and head_words[0] == "CREATE" and "TRIGGER" in head_words
