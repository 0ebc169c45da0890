from app.tags import parse_tags


def test_hashtags_are_extracted_when_present() -> None:
    assert parse_tags("fun times #dance #summer2024 at the beach") == ["#dance", "#summer2024"]


def test_unicode_hashtags() -> None:
    assert parse_tags("#שלום #café") == ["#שלום", "#café"]


def test_plain_words_get_prefixed() -> None:
    assert parse_tags("dance, summer; beach  party") == ["#dance", "#summer", "#beach", "#party"]


def test_empty_input() -> None:
    assert parse_tags(None) == []
    assert parse_tags("") == []
    assert parse_tags("   ") == []
    assert parse_tags(" ,; ") == []


def test_list_input_is_normalized() -> None:
    assert parse_tags(["dance", "#skate", " ", ""]) == ["#dance", "#skate"]
