"""
Lexers for the zonescript front ends.

LuaLexer tokenizes the alternate syntax (a Lua 5.4 dialect):
- Line comments (--) and long comments (--[[ ]], --[==[ ]==])
- Short strings with the full Lua escape set, decoded as UTF-8
- Long strings ([[ ]], [==[ ]==])
- Integer literals (decimal, hex) and float literals (incl. exponents)
- All Lua keywords and the operators the interpreter implements

NativeLexer tokenizes the dnscontrol JavaScript subset the serializer
emits: // and /* */ comments, JavaScript string escapes, numbers,
punctuation for calls, object and array literals.
"""

from typing import Dict, List, Optional, Iterator
from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan,
    LUA_KEYWORDS, NATIVE_KEYWORDS, keyword_value,
)
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_unterminated_long_bracket,
    error_unterminated_comment,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
    error_invalid_utf8,
)


HEX_DIGITS = "0123456789abcdefABCDEF"


class _BaseLexer:
    """Character cursor, location tracking and token assembly shared by both lexers."""

    keywords: Dict[str, TokenType] = {}

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None  # Cached line list

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _match(self, expected: str) -> bool:
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _skip_trivia(self) -> None:
        raise NotImplementedError

    def _scan_token(self) -> Token:
        raise NotImplementedError

    def _scan_identifier_or_keyword(self) -> Token:
        start = self._location()
        while self._peek().isalnum() or self._peek() == '_':
            self._advance()
        lexeme = self.source[start.offset:self.pos]
        token_type = self.keywords.get(lexeme)
        if token_type is not None:
            return self._make_token(token_type, keyword_value(token_type, lexeme), start, lexeme)
        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    def _scan_decimal(self, start: SourceLocation) -> Token:
        """Scan digits, optional fraction and optional exponent."""
        is_float = False
        while self._peek().isdigit():
            self._advance()
        if self._peek() == '.' and self._peek(1) != '.':
            is_float = True
            self._advance()
            while self._peek().isdigit():
                self._advance()
        if self._peek() in 'eE':
            is_float = True
            self._advance()
            if self._peek() in '+-':
                self._advance()
            if not self._peek().isdigit():
                self._bad_number(start)
            while self._peek().isdigit():
                self._advance()
        if self._peek().isalpha() or self._peek() == '_':
            self._advance()
            self._bad_number(start)

        lexeme = self.source[start.offset:self.pos]
        if lexeme == '.':
            self._bad_number(start)
        if is_float:
            return self._make_token(TokenType.FLOAT_LITERAL, float(lexeme), start, lexeme)
        return self._make_token(TokenType.INT_LITERAL, int(lexeme), start, lexeme)

    def _scan_hex(self, start: SourceLocation) -> Token:
        """Scan a hexadecimal integer after its 0x prefix."""
        self._advance()  # 'x' or 'X'
        if self._peek() not in HEX_DIGITS:
            self._bad_number(start)
        while self._peek() in HEX_DIGITS:
            self._advance()
        if self._peek().isalnum() or self._peek() in '._':
            self._advance()
            self._bad_number(start)
        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.INT_LITERAL, int(lexeme[2:], 16), start, lexeme)

    def _bad_number(self, start: SourceLocation) -> None:
        lexeme = self.source[start.offset:self.pos]
        raise error_invalid_number_literal(
            lexeme, self._span(start), self.get_source_line(start.line)
        )

    def _scan_number(self) -> Token:
        start = self._location()
        if self._peek() == '0' and self._peek(1) in 'xX':
            self._advance()
            return self._scan_hex(start)
        return self._scan_decimal(start)

    def _read_hex(self, count: int, esc_start: SourceLocation, prefix: str) -> int:
        digits = ''
        for _ in range(count):
            if self._peek() not in HEX_DIGITS:
                raise error_invalid_escape_sequence(
                    prefix + digits, self._span(esc_start), self.get_source_line(esc_start.line)
                )
            digits += self._advance()
        return int(digits, 16)

    def _read_braced_hex(self, esc_start: SourceLocation) -> int:
        """Read \\u{XXXX}; the 'u' has been consumed."""
        self._advance()  # '{'
        digits = ''
        while self._peek() in HEX_DIGITS:
            digits += self._advance()
        if not digits or not self._match('}') or int(digits, 16) > 0x10FFFF:
            raise error_invalid_escape_sequence(
                "u{" + digits, self._span(esc_start), self.get_source_line(esc_start.line)
            )
        return int(digits, 16)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


class LuaLexer(_BaseLexer):
    """
    Tokenizer for the Lua dialect.

    Usage:
        lexer = LuaLexer(source_code, "dnscontrol.lua")
        tokens = lexer.tokenize()
    """

    keywords = LUA_KEYWORDS

    SIMPLE_ESCAPES = {
        'a': 0x07, 'b': 0x08, 'f': 0x0C, 'n': 0x0A, 'r': 0x0D,
        't': 0x09, 'v': 0x0B, '\\': 0x5C, '"': 0x22, "'": 0x27,
        '\n': 0x0A,
    }

    def __init__(self, source: str, filename: Optional[str] = None):
        super().__init__(source, filename)
        # A leading shebang line is ignored, as by the reference interpreter
        if source.startswith('#!'):
            while self._peek() != '\n' and not self._is_at_end():
                self._advance()

    def _long_bracket_level(self) -> int:
        """Return the level of a long bracket opening at pos, or -1."""
        if self._peek() != '[':
            return -1
        level = 0
        while self._peek(level + 1) == '=':
            level += 1
        if self._peek(level + 1) == '[':
            return level
        return -1

    def _read_long_bracket(self, level: int, what: str) -> str:
        """Consume a long bracket of the given level and return its body."""
        start = self._location()
        for _ in range(level + 2):
            self._advance()
        # A newline right after the opening bracket is skipped
        if self._peek() == '\r':
            self._advance()
        if self._peek() == '\n':
            self._advance()
        body_start = self.pos
        closing = ']' + '=' * level + ']'
        while not self._is_at_end():
            if self.source.startswith(closing, self.pos):
                body = self.source[body_start:self.pos]
                for _ in range(len(closing)):
                    self._advance()
                return body
            self._advance()
        raise error_unterminated_long_bracket(
            what, self._span(start), self.get_source_line(start.line)
        )

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments."""
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n\f\v':
                self._advance()
            elif ch == '-' and self._peek(1) == '-':
                self._advance()
                self._advance()
                level = self._long_bracket_level()
                if level >= 0:
                    self._read_long_bracket(level, "comment")
                else:
                    while self._peek() != '\n' and not self._is_at_end():
                        self._advance()
            else:
                break

    def _scan_string(self) -> Token:
        """Scan a short string literal into UTF-8 decoded text."""
        start = self._location()
        quote = self._advance()
        data = bytearray()

        while True:
            if self._is_at_end() or self._peek() == '\n':
                raise error_unterminated_string(
                    self._span(start), self.get_source_line(start.line)
                )
            ch = self._advance()
            if ch == quote:
                break
            if ch == '\\':
                self._scan_escape_sequence(data)
            else:
                data.extend(ch.encode('utf-8'))

        try:
            value = data.decode('utf-8')
        except UnicodeDecodeError:
            raise error_invalid_utf8(self._span(start), self.get_source_line(start.line))
        return self._make_token(TokenType.STRING_LITERAL, value, start)

    def _scan_escape_sequence(self, data: bytearray) -> None:
        """Decode one escape sequence after the backslash into raw bytes."""
        esc_start = self._location()
        if self._is_at_end():
            raise error_invalid_escape_sequence(
                "", self._span(esc_start), self.get_source_line(esc_start.line)
            )
        ch = self._advance()

        if ch in self.SIMPLE_ESCAPES:
            data.append(self.SIMPLE_ESCAPES[ch])
        elif ch == 'z':
            while self._peek() in ' \t\r\n\f\v' and not self._is_at_end():
                self._advance()
        elif ch == 'x':
            data.append(self._read_hex(2, esc_start, 'x'))
        elif ch.isdigit():
            digits = ch
            while len(digits) < 3 and self._peek().isdigit():
                digits += self._advance()
            if int(digits) > 255:
                raise error_invalid_escape_sequence(
                    digits, self._span(esc_start), self.get_source_line(esc_start.line)
                )
            data.append(int(digits))
        elif ch == 'u' and self._peek() == '{':
            data.extend(chr(self._read_braced_hex(esc_start)).encode('utf-8', 'surrogatepass'))
        else:
            raise error_invalid_escape_sequence(
                ch, self._span(esc_start), self.get_source_line(esc_start.line)
            )

    def _scan_long_string(self, level: int) -> Token:
        start = self._location()
        value = self._read_long_bracket(level, "string")
        return self._make_token(TokenType.STRING_LITERAL, value, start)

    def _scan_token(self) -> Token:
        self._skip_trivia()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch in '"\'':
            return self._scan_string()

        level = self._long_bracket_level()
        if level >= 0:
            return self._scan_long_string(level)

        if ch.isdigit() or (ch == '.' and self._peek(1).isdigit()):
            return self._scan_number()

        if ch.isalpha() or ch == '_':
            return self._scan_identifier_or_keyword()

        self._advance()

        # Multi-character operators
        if ch == '.':
            if self._match('.'):
                if self._match('.'):
                    return self._make_token(TokenType.ELLIPSIS, "...", start)
                return self._make_token(TokenType.CONCAT, "..", start)
            return self._make_token(TokenType.DOT, ".", start)
        if ch == '=' and self._match('='):
            return self._make_token(TokenType.EQ, "==", start)
        if ch == '~':
            if self._match('='):
                return self._make_token(TokenType.NE, "~=", start)
            raise error_unexpected_character(ch, self._span(start), self.get_source_line(start.line))
        if ch == '<' and self._match('='):
            return self._make_token(TokenType.LE, "<=", start)
        if ch == '>' and self._match('='):
            return self._make_token(TokenType.GE, ">=", start)
        if ch == '/' and self._match('/'):
            return self._make_token(TokenType.DOUBLE_SLASH, "//", start)

        single_char_tokens = {
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.STAR,
            '/': TokenType.SLASH,
            '%': TokenType.PERCENT,
            '^': TokenType.CARET,
            '#': TokenType.HASH,
            '<': TokenType.LT,
            '>': TokenType.GT,
            '=': TokenType.ASSIGN,
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            '{': TokenType.LBRACE,
            '}': TokenType.RBRACE,
            '[': TokenType.LBRACKET,
            ']': TokenType.RBRACKET,
            ';': TokenType.SEMICOLON,
            ':': TokenType.COLON,
            ',': TokenType.COMMA,
        }

        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )


class NativeLexer(_BaseLexer):
    """Tokenizer for the dnscontrol JavaScript subset."""

    keywords = NATIVE_KEYWORDS

    SIMPLE_ESCAPES = {
        'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v',
        '0': '\0', '\\': '\\', '"': '"', "'": "'", '/': '/',
    }

    def _skip_trivia(self) -> None:
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n\f\v\ufeff\u2028\u2029':
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                while self._peek() != '\n' and not self._is_at_end():
                    self._advance()
            elif ch == '/' and self._peek(1) == '*':
                start = self._location()
                self._advance()
                self._advance()
                while not (self._peek() == '*' and self._peek(1) == '/'):
                    if self._is_at_end():
                        raise error_unterminated_comment(
                            self._span(start), self.get_source_line(start.line)
                        )
                    self._advance()
                self._advance()
                self._advance()
            else:
                break

    def _scan_string(self) -> Token:
        start = self._location()
        quote = self._advance()
        chars = []

        while True:
            if self._is_at_end() or self._peek() == '\n':
                raise error_unterminated_string(
                    self._span(start), self.get_source_line(start.line)
                )
            ch = self._advance()
            if ch == quote:
                break
            if ch != '\\':
                chars.append(ch)
                continue

            esc_start = self._location()
            esc = self._advance()
            if esc in self.SIMPLE_ESCAPES:
                chars.append(self.SIMPLE_ESCAPES[esc])
            elif esc == '\n':
                pass  # line continuation
            elif esc == 'x':
                chars.append(chr(self._read_hex(2, esc_start, 'x')))
            elif esc == 'u' and self._peek() == '{':
                chars.append(chr(self._read_braced_hex(esc_start)))
            elif esc == 'u':
                chars.append(chr(self._read_hex(4, esc_start, 'u')))
            else:
                raise error_invalid_escape_sequence(
                    esc, self._span(esc_start), self.get_source_line(esc_start.line)
                )

        # \uXXXX escapes may spell UTF-16 surrogate pairs
        try:
            value = ''.join(chars).encode('utf-16', 'surrogatepass').decode('utf-16')
        except UnicodeDecodeError:
            raise error_invalid_escape_sequence(
                "u (unpaired surrogate)", self._span(start), self.get_source_line(start.line)
            )
        return self._make_token(TokenType.STRING_LITERAL, value, start)

    def _scan_token(self) -> Token:
        self._skip_trivia()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch in '"\'':
            return self._scan_string()

        if ch.isdigit() or (ch == '.' and self._peek(1).isdigit()):
            return self._scan_number()

        if ch.isalpha() or ch in '_$':
            return self._scan_identifier_or_keyword()

        self._advance()

        single_char_tokens = {
            '-': TokenType.MINUS,
            '+': TokenType.PLUS,
            '=': TokenType.ASSIGN,
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            '{': TokenType.LBRACE,
            '}': TokenType.RBRACE,
            '[': TokenType.LBRACKET,
            ']': TokenType.RBRACKET,
            ';': TokenType.SEMICOLON,
            ':': TokenType.COLON,
            ',': TokenType.COMMA,
            '.': TokenType.DOT,
        }

        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def _scan_identifier_or_keyword(self) -> Token:
        start = self._location()
        while self._peek().isalnum() or self._peek() in '_$':
            self._advance()
        lexeme = self.source[start.offset:self.pos]
        token_type = self.keywords.get(lexeme)
        if token_type is not None:
            return self._make_token(token_type, keyword_value(token_type, lexeme), start, lexeme)
        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize Lua-dialect source code.

    Raises:
        LexerError: If tokenization fails
    """
    return LuaLexer(source, filename).tokenize()


def tokenize_native(source: str, filename: Optional[str] = None) -> List[Token]:
    """Tokenize native (dnscontrol JavaScript) source code."""
    return NativeLexer(source, filename).tokenize()
