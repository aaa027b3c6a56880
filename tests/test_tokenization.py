from rsvp_stream.models import Token
from rsvp_stream.tokenization import join_tokens, tokenize, tokenize_page


def _texts(tokens):
    return [token.text for token in tokens]


def test_tokenize_attaches_trailing_punctuation():
    """Punctuation runs ride on the token before them."""
    tokens = tokenize("Hello, world! It's sunny today.")

    assert _texts(tokens) == ["Hello,", "world!", "It's", "sunny", "today."]
    assert not any(token.is_paragraph_end for token in tokens)


def test_tokenize_drops_leading_punctuation():
    """Punctuation with nothing before it is discarded."""
    assert _texts(tokenize("... and then")) == ["and", "then"]


def test_tokenize_flags_paragraph_ends_except_last():
    """Every paragraph but the final one ends with a flagged token."""
    tokens = tokenize("First para.\r\n\r\n\r\nSecond one.\n\nThird")

    assert _texts(tokens) == ["First", "para.", "Second", "one.", "Third"]
    assert [t.is_paragraph_end for t in tokens] == [False, True, False, True, False]


def test_tokenize_keeps_contractions_abbreviations_and_numbers_whole():
    tokens = tokenize("don't stop e.g. now it’s 3.14")

    assert _texts(tokens) == ["don't", "stop", "e.g.", "now", "it’s", "3.14"]


def test_tokenize_treats_urls_as_single_tokens():
    tokens = tokenize("Visit https://example.com/a?b=1 or www.example.org today")

    assert _texts(tokens) == [
        "Visit",
        "https://example.com/a?b=1",
        "or",
        "www.example.org",
        "today",
    ]


def test_tokenize_handles_unicode_letters():
    assert _texts(tokenize("Café über naïve")) == ["Café", "über", "naïve"]


def test_tokenize_empty_input_yields_blank_token():
    """Input without words still produces one displayable token."""
    assert tokenize("") == [Token(" ")]
    assert tokenize("\r\n\r\n   ") == [Token(" ")]
    assert tokenize("?!...") == [Token(" ")]


def test_tokenize_page_returns_nothing_for_empty_pages():
    assert tokenize_page("   \n\n ") == []


def test_tokenize_is_deterministic():
    text = "One. Two, three!\n\nFour"
    assert tokenize(text) == tokenize(text)


def test_join_tokens_rebuilds_paragraphs():
    text = "A short line.\n\nAnother paragraph here."
    assert join_tokens(tokenize(text)) == text
