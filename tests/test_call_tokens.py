import pytest

from call_tokens import (
    DELIMITER,
    PLACEHOLDER_INTENT,
    CallIntent,
    InputValidationError,
    TokenDecodeError,
    decode,
    decode_or_placeholder,
    encode,
    is_valid_phone,
    mask_number,
    require_phone,
)


@pytest.mark.parametrize(
    "number,label",
    [
        ("+14155550000", "Alice"),
        ("(415) 555-0000", "Front desk_2"),
        ("020 7946 0958", "Zoë's café. Open late"),
        ("12345", ""),
    ],
)
def test_round_trip(number, label):
    intent = decode(encode(number, label))
    assert (intent.target_number, intent.label) == (number, label)


def test_token_is_url_safe():
    token = encode("+14155550000", "a/b+c?d=e&f")
    assert all(ch.isalnum() or ch in "-_." for ch in token)
    assert "=" not in token


def test_unique_tokens_carry_creation_time():
    token = encode("+14155550000", "Alice")
    assert len(token.split(DELIMITER)) == 3
    intent = decode(token)
    assert intent.created_at.year >= 2024


def test_token_without_suffix():
    token = encode("+14155550000", "Alice", unique=False)
    assert len(token.split(DELIMITER)) == 2
    assert decode(token) == CallIntent("+14155550000", "Alice")


def test_extra_fields_are_ignored():
    token = encode("+14155550000", "Alice", unique=False) + ".not-a-time.more"
    assert decode(token).label == "Alice"


@pytest.mark.parametrize(
    "token",
    [
        "not_a_valid_token",
        "",
        None,
        "onlyonefield",
        ".QWxpY2U",
        "K3!x.QWxpY2U",
        "A.QWxpY2U",
        "_w.QWxpY2U",
    ],
)
def test_malformed_tokens_raise_decode_error(token):
    with pytest.raises(TokenDecodeError):
        decode(token)


def test_placeholder_substituted_for_malformed_token():
    intent = decode_or_placeholder("not_a_valid_token")
    assert intent == PLACEHOLDER_INTENT
    assert intent.label == "Demo Contact"


def test_decode_or_placeholder_passes_valid_tokens_through():
    token = encode("+14155550000", "Alice")
    assert decode_or_placeholder(token).label == "Alice"


@pytest.mark.parametrize("value", ["+14155550000", "(415) 555-0000", "415-555-0000"])
def test_valid_phone_numbers(value):
    assert is_valid_phone(value)


@pytest.mark.parametrize(
    "value", ["", None, "call me", "+1 415 555 00x0", "++1415", "١٢٣٤٥٦", "+４１５５５５００００"]
)
def test_invalid_phone_numbers(value):
    assert not is_valid_phone(value)


def test_require_phone_messages():
    with pytest.raises(InputValidationError, match="Phone number is required"):
        require_phone("   ")
    with pytest.raises(InputValidationError, match="Invalid phone number format"):
        require_phone("abc")
    assert require_phone(" +14155550000 ") == "+14155550000"


def test_mask_number_keeps_last_four_digits():
    assert mask_number("+14155550000") == "+*******0000"
