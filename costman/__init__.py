"""
Django Costman - Production cost calculation.

Usage:
    from costman import CostingService, CostingError

    result = CostingService.calculate({"rates": {"EUR": 38.50}, "vat": 18})
    result.result["0-50"].finals["TRY"]
"""


def __getattr__(name):
    if name == "CostingService":
        from costman.service import CostingService

        return CostingService
    elif name == "CostingError":
        from costman.exceptions import CostingError

        return CostingError
    elif name == "calculate":
        from costman.calculator import calculate

        return calculate
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["CostingService", "CostingError", "calculate"]
__version__ = "1.0.0"
