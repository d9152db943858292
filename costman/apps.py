from django.apps import AppConfig
from django.core.exceptions import ImproperlyConfigured
from django.utils.translation import gettext_lazy as _


class CostmanConfig(AppConfig):
    name = "costman"
    verbose_name = _("Maliyet Hesaplama")

    def ready(self):
        from costman.conf import get_costman_settings

        conf = get_costman_settings()
        if conf.BASE_CURRENCY not in conf.SUPPORTED_CURRENCIES:
            raise ImproperlyConfigured(
                f"COSTMAN BASE_CURRENCY {conf.BASE_CURRENCY!r} must be one of SUPPORTED_CURRENCIES"
            )
        if conf.LOCAL_CURRENCY in conf.SUPPORTED_CURRENCIES:
            raise ImproperlyConfigured(
                f"COSTMAN LOCAL_CURRENCY {conf.LOCAL_CURRENCY!r} is the rate denominator "
                "and cannot be a SUPPORTED_CURRENCY"
            )
        missing = [r for r in conf.BATCH_RANGES if r not in conf.DEFAULT_BATCH]
        if missing:
            raise ImproperlyConfigured(f"COSTMAN DEFAULT_BATCH has no size for ranges {missing}")
