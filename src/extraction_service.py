"""
Extraction Service
==================
End-to-end line-item extraction for one receipt's OCR text.

Workflow
--------
1. Build a per-call context (non-empty stripped lines, currency, options)
2. Classify the store chain
3. Select the applicable catalog rules
4. Run the staged pipeline (exact → flexible → heuristic → fallback)
5. Auto-correct, then validate; invalid items are dropped
6. Normalize, categorize, deduplicate and re-score
7. Package a new ParseResult with the diagnostics

extract() never raises for text input; catalog mutations and test_pattern()
raise ConfigError for invalid rule definitions.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from document_service import DocumentInput, DocumentService, HttpDocumentService
from extraction_errors import ValidationFailure
from hybrid_merger import HybridMerger, HybridResult
from item_scoring import overall_confidence
from patterns.catalog import PatternCatalog
from patterns.definitions import PatternConfig, validate_pattern
from receipt_classifier import StoreClassifier
from receipt_models import ParseResult, ProcessingOptions, ReceiptAnalysisContext
from result_optimizer import ResultOptimizer
from result_validator import ResultValidator
from stages.pattern_stages import PatternStage
from stages.pipeline import DiagnosticsSink, StagedPipeline
from utils import deep_merge, detect_currency, format_processing_time, setup_logging


OptionsInput = Union[ProcessingOptions, Dict[str, Any], None]


class ExtractionService:
    """
    Usage
    -----
    service = ExtractionService()
    result  = service.extract(ocr_text)
    hybrid  = await service.extract_hybrid(ocr_text)
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        catalog: Optional[PatternCatalog] = None,
        classifier: Optional[StoreClassifier] = None,
        document_service: Optional[DocumentService] = None,
        diagnostics_sink: Optional[DiagnosticsSink] = None,
    ):
        """Initialize all extraction components"""
        logger.info("Initializing Extraction Service")

        self.config = deep_merge(self._default_config(), self._load_config(config_path))

        self.catalog = catalog or PatternCatalog()
        overrides = self.config["catalog"].get("overrides_path")
        if overrides:
            self.catalog.load_overrides(overrides)

        self.classifier = classifier or StoreClassifier(
            threshold=self.config["classifier"]["threshold"]
        )
        self.pipeline = StagedPipeline.from_config(self.config["pipeline"], diagnostics_sink)
        self.validator = ResultValidator(auto_correct=self.config["validation"]["auto_correct"])
        self.optimizer = ResultOptimizer(
            similarity_threshold=self.config["optimizer"]["similarity_threshold"]
        )

        hybrid = self.config["hybrid"]
        if document_service is None and hybrid["enabled"]:
            document_service = HttpDocumentService.from_config(
                self.config["document_service"], timeout=hybrid["timeout_seconds"]
            )
        self.document_service = document_service
        self.merger = HybridMerger(
            self.extract,
            document_service=self.document_service,
            quality_threshold=hybrid["quality_threshold"],
            timeout=hybrid["timeout_seconds"],
            merge_strategy=hybrid["merge_strategy"],
        )

        logger.success("Extraction Service ready")

    def _load_config(self, config_path: Optional[str] = None) -> Dict:
        """Load configuration from YAML file"""
        if config_path is None:
            config_path = Path(__file__).parent.parent / "config" / "extraction_config.yaml"

        if not os.path.exists(config_path):
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return {}

        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        return config or {}

    def configure_logging(self):
        """Point loguru at the sinks named in the `logging` section."""
        logging_config = self.config["logging"]
        setup_logging(log_file=logging_config.get("file"), level=logging_config.get("level", "INFO"))

    def _default_config(self) -> Dict:
        """Return default configuration"""
        return {
            'logging': {
                'level': 'INFO',
                'file': 'logs/receipt_extraction.log'
            },
            'catalog': {
                'overrides_path': None
            },
            'classifier': {
                'threshold': 10
            },
            'pipeline': {
                'confidence_threshold': 0.3,
                'max_processing_time_ms': 5000,
                'enable_fallback': True,
                'early_exit_confidence': 0.8,
                'exact_min_confidence': 0.8,
                'flexible_min_confidence': 0.5,
                'flexible_scale': 0.9,
                'heuristic': {'window': 2, 'min_score': 0.5, 'weight': 0.75},
                'fallback_confidence': 0.3
            },
            'validation': {
                'auto_correct': True
            },
            'optimizer': {
                'similarity_threshold': 0.8
            },
            'hybrid': {
                'enabled': False,
                'quality_threshold': 0.7,
                'timeout_seconds': 30,
                'merge_strategy': 'best-of-both'
            },
            'document_service': {
                'endpoint': None,
                'api_key_env': 'DOCUMENT_SERVICE_API_KEY'
            }
        }

    def default_options(self) -> ProcessingOptions:
        return ProcessingOptions.from_dict(self.config["pipeline"])

    def _options(self, options: OptionsInput) -> ProcessingOptions:
        if isinstance(options, ProcessingOptions):
            return options
        defaults = self.config["pipeline"]
        return ProcessingOptions.from_dict({**defaults, **(options or {})})

    # ── Extraction ────────────────────────────────────────────────────────────

    def extract(self, text: str, options: OptionsInput = None) -> ParseResult:
        """
        Extract line items from receipt text.

        Args:
            text:    OCR text, newline separated
            options: ProcessingOptions or a dict of overrides

        Returns:
            ParseResult with items sorted by confidence
        """
        opts = self._options(options)
        context = ReceiptAnalysisContext.from_text(text, opts)

        try:
            context.currency = detect_currency(context.original_text)
            context.detected_store = self.classifier.classify(context.original_text)
            context.patterns = tuple(self.catalog.applicable_for(context.detected_store))
            logger.info(
                f"[ExtractionService] {len(context.lines)} lines, store={context.detected_store or 'generic'}, "
                f"{len(context.patterns)} rules, currency={context.currency.value}"
            )

            raw = self.pipeline.run(context)

            items, corrections = self.validator.auto_correct(list(raw.items))
            report = self.validator.validate(items)
            for rejected in report.rejected:
                failure = ValidationFailure(rejected.item, [i for i in rejected.issues if i.severity == "error"])
                logger.warning(f"[ExtractionService] {failure}")

            items = self.optimizer.optimize(report.valid_items, context.currency)

            metadata = dict(raw.metadata)
            metadata["processing_time_ms"] = round(context.elapsed_ms(), 2)
            metadata["corrections"] = [c.to_dict() for c in corrections]
            metadata["rejected_items"] = [
                {"name": v.item.name, "issues": [i.to_dict() for i in v.issues]}
                for v in report.rejected
            ]
            metadata["global_issues"] = [i.to_dict() for i in report.global_issues]
            metadata["currency"] = context.currency.value

            result = ParseResult(
                pattern_id=raw.pattern_id,
                confidence=overall_confidence(i.confidence for i in items),
                items=items,
                metadata=metadata,
            )
            result.metadata["quality"] = self.optimizer.evaluate(result)

        except Exception as e:
            logger.error(f"[ExtractionService] Extraction failed: {e}")
            return ParseResult.empty(
                processing_time_ms=round(context.elapsed_ms(), 2),
                store_type=context.detected_store,
                error=str(e),
            )

        logger.info(
            f"[ExtractionService] {len(result.items)} items via '{result.pattern_id}' "
            f"(confidence {result.confidence:.2f}) in {format_processing_time(context.elapsed_ms())}"
        )
        return result

    async def extract_hybrid(self, text: str, document: Optional[DocumentInput] = None) -> HybridResult:
        """Consult the external document service first, then reconcile with extract()."""
        return await self.merger.process(text, document)

    def test_pattern(self, definition: Union[PatternConfig, Dict[str, Any]], text: str) -> ParseResult:
        """
        Try a candidate rule on a sample text without touching the catalog.

        The rule runs alone, regardless of its confidence band; heuristic
        and fallback stages are left out so only the rule's own matches show.
        Raises ConfigError when the definition is invalid.
        """
        rule = validate_pattern(definition)
        options = ProcessingOptions(
            confidence_threshold=0.0,
            max_processing_time_ms=self.config["pipeline"]["max_processing_time_ms"],
            enable_fallback=False,
        )
        context = ReceiptAnalysisContext.from_text(text, options, patterns=(rule,))
        context.currency = detect_currency(context.original_text)

        result = StagedPipeline(stages=[PatternStage(min_confidence=0.0)]).run(context)
        metadata = dict(result.metadata)
        metadata["tested_pattern"] = rule.id
        logger.info(f"[ExtractionService] Pattern '{rule.id}' matched {len(result.items)} items")
        return result.with_changes(pattern_id=rule.id, metadata=metadata)
