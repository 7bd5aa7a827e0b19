"""
Product Categorizer
===================
Infers a category for an item from its name using a closed, ordered table.
Keywords (Japanese and English) are tried first, then name suffixes, then
unit hints.  The first matching category wins; anything unmatched is
'other'.  Items that already carry a non-default category are left alone.
"""

import re
from typing import List, Optional, Tuple

from receipt_models import DEFAULT_CATEGORY, ExtractedItem


# ─── Category table ───────────────────────────────────────────────────────────

# (category, keywords, suffix regexes) in priority order
_CATEGORY_RULES: List[Tuple[str, List[str], List[str]]] = [
    ("vegetables", [
        "キャベツ", "レタス", "トマト", "きゅうり", "なす", "にんじん", "人参",
        "たまねぎ", "玉ねぎ", "じゃがいも", "ほうれん草", "ブロッコリー", "ねぎ",
        "大根", "白菜", "ピーマン", "もやし",
        "cabbage", "lettuce", "tomato", "cucumber", "carrot", "onion", "potato",
        "spinach", "broccoli",
    ], [r'菜$']),
    ("fruits", [
        "りんご", "リンゴ", "バナナ", "みかん", "いちご", "ぶどう", "メロン",
        "オレンジ", "キウイ", "ブルーベリー",
        "apple", "banana", "orange", "strawberry", "grape", "melon", "kiwi",
        "blueberry",
    ], []),
    ("meat", [
        "牛肉", "豚肉", "鶏肉", "ひき肉", "ハム", "ベーコン", "ソーセージ",
        "PROSCIUTTO", "プロシュート",
        "beef", "pork", "chicken", "ham", "bacon", "sausage",
    ], [r'肉$']),
    ("fish", [
        "鮭", "さけ", "サーモン", "まぐろ", "マグロ", "さば", "えび", "いか",
        "刺身", "しらす",
        "salmon", "tuna", "mackerel", "shrimp", "fish",
    ], [r'魚$']),
    ("dairy", [
        "牛乳", "ミルク", "ヨーグルト", "チーズ", "バター", "生クリーム",
        "milk", "yogurt", "cheese", "butter", "cream",
    ], []),
    ("bread_grains", [
        "パン", "食パン", "米", "ごはん", "うどん", "そば", "パスタ", "シリアル",
        "bread", "bagel", "rice", "pasta", "noodle", "cereal", "croissant",
    ], [r'パン$']),
    ("canned", [
        "缶詰", "瓶詰", "ツナ缶", "さば缶",
        "canned",
    ], [r'缶$']),
    ("seasonings", [
        "醤油", "しょうゆ", "味噌", "みそ", "塩", "砂糖", "酢", "みりん",
        "ソース", "ケチャップ", "マヨネーズ", "ドレッシング", "だし",
        "soy sauce", "salt", "sugar", "vinegar", "ketchup", "mayonnaise",
        "dressing", "sauce",
    ], []),
    ("beverages", [
        "お茶", "緑茶", "コーヒー", "紅茶", "ジュース", "ミネラルウォーター", "ビール", "ワイン",
        "コーラ", "サイダー", "ユダノム",
        "tea", "coffee", "juice", "water", "beer", "wine", "cola", "soda",
        "latte", "drink",
    ], [r'茶$']),
    ("snacks", [
        "お菓子", "チョコ", "チョコレート", "クッキー", "ポテトチップス", "せんべい",
        "ガム", "アイス", "スナック", "ドーナツ",
        "snack", "chocolate", "cookie", "chips", "candy", "gum", "donut",
    ], []),
    ("frozen", [
        "冷凍", "冷凍食品",
        "frozen",
    ], []),
    ("household", [
        "ティッシュ", "トイレットペーパー", "洗剤", "シャンプー", "歯ブラシ",
        "tissue", "toilet", "detergent", "shampoo", "towel",
    ], []),
    ("apparel", [
        "シューズ", "靴", "シャツ", "ソックス", "靴下",
        "ugg", "shoes", "shirt", "socks", "jacket",
    ], []),
    ("bags_electronics", [
        "バッグ", "ケーブル", "電池", "充電",
        "bag", "cable", "battery", "charger",
    ], []),
]

_COMPILED_RULES = [
    (category, [kw.lower() for kw in keywords], [re.compile(s) for s in suffixes])
    for category, keywords, suffixes in _CATEGORY_RULES
]

_DRINK_UNIT = re.compile(r'\d+(?:\.\d+)?\s*(?:ml|L)\b', re.IGNORECASE)
_FOOD_UNIT = re.compile(r'\d+(?:\.\d+)?\s*(?:g|kg|パック)(?!\w)', re.IGNORECASE)
_ASCII_WORD = re.compile(r'^[a-z ]+$')


def _contains_keyword(folded: str, keyword: str) -> bool:
    # latin keywords must match whole words ("ham" not in "shampoo")
    if _ASCII_WORD.match(keyword):
        return re.search(rf'(?<![a-z]){re.escape(keyword)}(?![a-z])', folded) is not None
    return keyword in folded


class ProductCategorizer:
    """Keyword / suffix / unit based category inference."""

    categories = [c for c, _, _ in _CATEGORY_RULES] + ["food", DEFAULT_CATEGORY]

    def categorize(self, name: str) -> str:
        if not name:
            return DEFAULT_CATEGORY
        folded = name.lower()

        for category, keywords, _ in _COMPILED_RULES:
            if any(_contains_keyword(folded, kw) for kw in keywords):
                return category

        stripped = name.strip()
        for category, _, suffixes in _COMPILED_RULES:
            if any(s.search(stripped) for s in suffixes):
                return category

        if _DRINK_UNIT.search(name):
            return "beverages"
        if _FOOD_UNIT.search(name):
            return "food"
        return DEFAULT_CATEGORY

    def apply(self, item: ExtractedItem, category: Optional[str] = None) -> ExtractedItem:
        """Back-fill the category of an item that has none yet."""
        if item.category and item.category != DEFAULT_CATEGORY:
            return item
        inferred = category or self.categorize(item.name)
        if inferred == item.category:
            return item
        return item.with_changes(category=inferred)
