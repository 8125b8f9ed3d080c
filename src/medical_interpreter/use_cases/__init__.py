from .interpretation import InterpretationPipeline

__all__ = ["InterpretationPipeline"]
