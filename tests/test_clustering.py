"""
Title clustering: keyword extraction and order-independent cluster keys.
"""
import pytest

from app.services.channel_fit.clustering import build_cluster_key, cluster_keywords, normalize_title
from app.services.channel_fit.types import UNCATEGORIZED_KEY


class TestNormalizeTitle:

    def test_drops_stop_words_numbers_and_short_tokens(self):
        assert normalize_title("The Best 2 Pack of Cotton T-Shirts for Men") == ["cotton", "shirts", "men"]

    def test_keeps_two_character_tokens(self):
        assert normalize_title("4K TV Wall Mount") == ["4k", "tv", "wall", "mount"]

    def test_deduplicates_in_first_occurrence_order(self):
        assert normalize_title("Candle candle CANDLE soy") == ["candle", "soy"]

    def test_unicode_is_normalised(self):
        # Full-width letters fold to ASCII under NFKC
        assert normalize_title("Ｃｅｒａｍｉｃ Mug") == ["ceramic", "mug"]

    def test_underscores_and_punctuation_split_words(self):
        assert normalize_title("steel_bottle/flask!") == ["steel", "bottle", "flask"]

    @pytest.mark.parametrize("title", ["", None, "   ", "the and for", "123 456"])
    def test_empty_results(self, title):
        assert normalize_title(title) == []


class TestClusterKey:

    def test_word_order_does_not_matter(self):
        a = build_cluster_key("Wireless Bluetooth Headphones")
        b = build_cluster_key("Headphones, Bluetooth (Wireless)")
        assert a == b == "bluetooth headphones wireless"

    def test_variant_attributes_collapse(self):
        assert build_cluster_key("Cotton Kurta - Blue, Size XL") == build_cluster_key("Cotton Kurta Red Large")

    def test_at_most_four_keywords(self):
        key = build_cluster_key("zeta alpha gamma beta delta epsilon")
        assert key.split(" ") == ["alpha", "beta", "delta", "epsilon"]

    def test_uncategorized_sentinel(self):
        assert build_cluster_key("Pack of 2") == UNCATEGORIZED_KEY
        assert cluster_keywords("Pack of 2") == []

    def test_keywords_match_key(self):
        assert cluster_keywords("Handmade Soy Candle") == ["candle", "handmade", "soy"]
