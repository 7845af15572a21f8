import pytest

from lexer import Lexer, VeclLexError, tokenize


def _types(text):
    return [token.type for token in tokenize(text)]


def test_program_skeleton():
    assert _types("BEGIN PROG\n  1\nEND\n") == ["BEGIN", "IDENT", "NEWLINE", "INT", "NEWLINE", "END", "NEWLINE", "EOF"]


def test_blank_lines_collapse_and_leading_ones_are_dropped():
    assert _types("\n\n  BEGIN P\n\n\n  1\nEND") == ["BEGIN", "IDENT", "NEWLINE", "INT", "NEWLINE", "END", "EOF"]


def test_two_character_operators_win_over_prefixes():
    assert _types("<- <= <> >= < > =") == ["ASSIGN", "LTE", "NEQ", "GTE", "LT", "GT", "EQ", "EOF"]


def test_single_character_symbols():
    assert _types("( ) [ ] , + - ~ * / #") == [
        "LPAREN", "RPAREN", "LBRACKET", "RBRACKET", "COMMA",
        "PLUS", "MINUS", "TILDE", "STAR", "SLASH", "HASH", "EOF",
    ]


def test_minus_directly_before_digit_is_part_of_the_integer():
    tokens = tokenize("-12 N - 1 N-1")
    assert [(t.type, t.value) for t in tokens] == [
        ("INT", "-12"),
        ("IDENT", "N"),
        ("MINUS", "-"),
        ("INT", "1"),
        ("IDENT", "N"),
        ("INT", "-1"),
        ("EOF", ""),
    ]


def test_identifiers_keywords_and_globals():
    tokens = tokenize("WHILE .X FOO_1 UNTIL")
    assert [(t.type, t.value) for t in tokens[:-1]] == [
        ("WHILE", "WHILE"),
        ("IDENT", ".X"),
        ("IDENT", "FOO_1"),
        ("UNTIL", "UNTIL"),
    ]


def test_string_keeps_raw_contents():
    token = tokenize('"hello /* world"')[0]
    assert token.type == "STRING"
    assert token.value == "hello /* world"


def test_comments_are_skipped_with_their_newlines():
    assert _types("1 /* first\n second */ 2") == ["INT", "INT", "EOF"]


def test_positions_are_one_based():
    tokens = tokenize("BEGIN P\n  X")
    x = tokens[3]
    assert (x.type, x.line, x.column) == ("IDENT", 2, 3)


def test_unexpected_character():
    with pytest.raises(VeclLexError) as info:
        tokenize("1\n  @")
    assert info.value.char == "@"
    assert (info.value.line, info.value.column) == (2, 3)
    assert "Unexpected char" in str(info.value)


def test_leading_underscore_is_rejected():
    with pytest.raises(VeclLexError):
        tokenize("_X")


def test_lowercase_letters_are_rejected():
    with pytest.raises(VeclLexError, match="Unexpected char 'b'"):
        tokenize("begin")
    with pytest.raises(VeclLexError) as info:
        tokenize("Xy <- 1")
    assert (info.value.char, info.value.column) == ("y", 2)
    with pytest.raises(VeclLexError):
        tokenize(".x")


def test_dot_without_letter_is_rejected():
    with pytest.raises(VeclLexError):
        tokenize(". X")


def test_unterminated_string():
    with pytest.raises(VeclLexError, match="Unterminated string"):
        tokenize('"abc')


def test_unterminated_comment():
    with pytest.raises(VeclLexError, match="Unterminated comment"):
        tokenize("1 /* abc")


def test_peek_does_not_advance():
    lexer = Lexer("A B")
    first = lexer.peek()
    assert lexer.peek() is first
    assert lexer.tokens() == []
    assert lexer.next_token() is first
    assert lexer.next_token().value == "B"
    assert [t.value for t in lexer.tokens()] == ["A", "B"]


def test_eof_repeats():
    lexer = Lexer("")
    assert lexer.next_token().type == "EOF"
    assert lexer.next_token().type == "EOF"
