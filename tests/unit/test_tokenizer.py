import pytest

from knowledge_engine.chunking.tokenizer import cjk_ratio, estimate_tokens


class TestEstimateTokens:

    def test_empty_text_has_no_tokens(self):
        assert estimate_tokens("") == 0

    def test_western_text_uses_four_chars_per_token(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2
        assert estimate_tokens("x" * 400) == 100

    def test_japanese_text_uses_point_seven_chars_per_token(self):
        # 3 characters / 0.7 = 4.29, 11 characters / 0.7 = 15.71
        assert estimate_tokens("当社は") == 5
        assert estimate_tokens("本社は東京都にあります") == 16

    def test_estimate_rounds_up(self):
        assert estimate_tokens("a") == 1
        assert estimate_tokens("あ") == 2

    def test_mixed_text_below_cjk_threshold_counts_as_western(self):
        text = "Revenue grew " * 5 + "売上"
        assert cjk_ratio(text) <= 0.3
        assert estimate_tokens(text) == -(-len(text) // 4)

    def test_mixed_text_above_cjk_threshold_counts_as_japanese(self):
        text = "売上高は10%増加しました"
        assert cjk_ratio(text) > 0.3
        assert estimate_tokens(text) > len(text) // 4


class TestCjkRatio:

    @pytest.mark.parametrize("text,expected", [
        ("", 0.0),
        ("abc", 0.0),
        ("ひらがな", 1.0),
        ("カタカナ", 1.0),
        ("漢字ab", 0.5),
    ])
    def test_ratio(self, text, expected):
        assert cjk_ratio(text) == pytest.approx(expected)
