"""
Costman signals.

Signals:
    calculation_completed:
        Sent after CostingService.calculate() computes a fresh result
        (not sent for cache hits).

        Kwargs:
            sender: CostingService class
            result: CalculationResult
            input_hash: str - hash of defaults, user input and overrides
            duration_ms: float - wall time of the calculation

        Example handler::

            from costman.signals import calculation_completed

            def on_calculation(sender, result, input_hash, **kwargs):
                logger.info("Calculated %s ranges (%s)", len(result.result), input_hash)

            calculation_completed.connect(on_calculation)

    defaults_loaded:
        Sent after defaults are loaded from the configured backend
        (not sent for cache hits).

        Kwargs:
            sender: CostingService class
            defaults: dict - the loaded defaults, live rates applied
            source: str - dotted path of the defaults backend class
"""

from django.dispatch import Signal

calculation_completed = Signal()
defaults_loaded = Signal()
