"""
Store Classifier for Japanese Retail Receipts
=============================================
Identifies the store chain BEFORE extraction so store-specific pattern
rules can be tried ahead of the generic ones.

Every known store has a signature: a keyword list, a per-occurrence
keyword weight and a few structural regexes.  A receipt is scored against
each signature:

  +10                   if any keyword occurs at all
  +count × weight       for every keyword occurrence
  +5                    if any structural regex matches

The best store wins when its score reaches the threshold (10).  Below the
threshold the receipt is 'generic' and the classifier returns None.  Ties
go to the store registered first.

Stores returned
───────────────
  'warehouse'     Costco-style wholesale club.  Five-line item blocks:
                  name / product code / quantity / unit price / price+tax.
  'life'          Supermarket with "*name ¥price" lines.
  'aeon'          Supermarket, name then price on the next line.
  'seven-eleven'  Convenience store, "name price" on one line.
  'cafe'          Coffee chain, "2コX単150" quantity lines.
  'peacock'       Supermarket, name then price on the next line.
"""

import re
from typing import Dict, List, Optional, Sequence

from loguru import logger

from item_scoring import score_store_signature


# ─── Store signatures ─────────────────────────────────────────────────────────

_SIGNATURES: Dict[str, dict] = {

    "warehouse": {
        "keywords": [
            "COSTCO", "コストコ", "WHOLESALE", "WAREHOUSE", "KIRKLAND",
        ],
        "keyword_weight": 2.0,
        "structure_patterns": [
            # name / code / qty / unit price / price + tax code
            re.compile(
                r'^[^\n\d][^\n]*\n\d{5,8}\n\d+\s*[個⚫●°]?\n[\d,]+\n[\d,]+\s*[TE]\s*$',
                re.MULTILINE,
            ),
            re.compile(r'MEMBER\s*#?\s*\d{6,}', re.IGNORECASE),
            re.compile(r'\d+\s*@\s*\$?\d+'),
        ],
    },

    "life": {
        "keywords": ["ライフ", "LIFE", "ライフコーポレーション"],
        "keyword_weight": 2.0,
        "structure_patterns": [
            re.compile(r'^\*\S.*\s[¥￥]\d{1,5}\s*$', re.MULTILINE),
        ],
    },

    "aeon": {
        "keywords": ["イオン", "AEON", "WAON", "トップバリュ"],
        "keyword_weight": 2.0,
        "structure_patterns": [],
    },

    "seven-eleven": {
        "keywords": ["セブン-イレブン", "セブンイレブン", "7-ELEVEN", "SEVEN-ELEVEN", "nanaco"],
        "keyword_weight": 2.0,
        "structure_patterns": [],
    },

    "cafe": {
        "keywords": [
            "サンマルクカフェ", "ドトールコーヒー", "DOUTOR", "スターバックス",
            "STARBUCKS", "タリーズコーヒー", "TULLY'S",
        ],
        "keyword_weight": 1.5,
        "structure_patterns": [
            re.compile(r'\d+\s*コ\s*[X×xｘ]\s*単', re.MULTILINE),
        ],
    },

    "peacock": {
        "keywords": ["ピーコック", "PEACOCK"],
        "keyword_weight": 2.0,
        "structure_patterns": [],
    },
}

DEFAULT_THRESHOLD = 10.0


class StoreClassifier:
    """
    Classify a receipt's store chain from its raw OCR text.

    Usage
    -----
    classifier = StoreClassifier()
    store = classifier.classify(text)
    # store: 'warehouse' | 'life' | ... | None (generic)
    """

    def __init__(
        self,
        signatures: Optional[Dict[str, dict]] = None,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        source = _SIGNATURES if signatures is None else signatures
        self._signatures: Dict[str, dict] = {k: dict(v) for k, v in source.items()}
        self.threshold = threshold

    @property
    def known_stores(self) -> List[str]:
        return list(self._signatures)

    def register(
        self,
        store_id: str,
        keywords: Sequence[str],
        keyword_weight: float = 2.0,
        structure_patterns: Sequence[str] = (),
    ):
        """Add (or replace) a store signature.  New stores rank last on ties."""
        self._signatures[store_id] = {
            "keywords": list(keywords),
            "keyword_weight": keyword_weight,
            "structure_patterns": [re.compile(p, re.MULTILINE) for p in structure_patterns],
        }
        logger.debug(f"[StoreClassifier] Registered signature '{store_id}'")

    def classify_with_scores(self, text: str) -> Dict[str, float]:
        """Score of every known store, in registration order."""
        return {
            store_id: score_store_signature(
                text,
                sig["keywords"],
                sig.get("keyword_weight", 1.0),
                sig.get("structure_patterns", []),
            )
            for store_id, sig in self._signatures.items()
        }

    def classify(self, text: str) -> Optional[str]:
        """
        Return the detected store id, or None when no store reaches the
        threshold.
        """
        if not text or not text.strip():
            return None

        best_store, best_score = None, 0.0
        for store_id, score in self.classify_with_scores(text).items():
            # strict '>' keeps the first-registered store on ties
            if score > best_score:
                best_store, best_score = store_id, score

        if best_store is not None and best_score >= self.threshold:
            logger.debug(f"[StoreClassifier] {best_store} (score {best_score:.1f})")
            return best_store

        logger.debug(f"[StoreClassifier] generic (best score {best_score:.1f})")
        return None
