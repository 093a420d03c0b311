"""
Intent classifiers.

`base.py` holds the Classifier contract with agent lookup and overload
retry; `anthropic_classifier.py` (single intent) and
`openai_classifier.py` (ranked multi-intent) call the vendor models.
"""

__all__ = [
    "base",
    "anthropic_classifier",
    "openai_classifier",
]
