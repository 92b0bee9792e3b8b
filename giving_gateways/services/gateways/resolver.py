"""
Gateway resolution.

Picks at most one gateway from a church's configured set. The order of
precedence is: explicit gateway id, then provider filter with an
environment tie-break, then the only configured gateway, then an
environment tie-break over everything. Ties are never broken arbitrarily.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from giving_gateways.models.gateway import (
    DEFAULT_ENVIRONMENT_PREFERENCE,
    Gateway,
    GatewayResolution,
    GetGatewayOptions,
    ResolutionReason,
)

logger = logging.getLogger(__name__)

OptionsLike = Union[GetGatewayOptions, Mapping[str, Any], None]


def coerce_options(options: OptionsLike) -> GetGatewayOptions:
    if options is None:
        return GetGatewayOptions()
    if isinstance(options, GetGatewayOptions):
        return options
    return GetGatewayOptions.model_validate(dict(options))


class GatewayResolver:
    """Deterministic gateway picker"""

    def __init__(self, default_environment_preference: Sequence[str] = DEFAULT_ENVIRONMENT_PREFERENCE):
        self.default_environment_preference = list(default_environment_preference)

    def resolve(self, gateways: Sequence[Gateway], options: OptionsLike = None) -> GatewayResolution:
        options = coerce_options(options)
        gateways = list(gateways or [])
        environment_order = (
            options.environment_preference
            if options.environment_preference is not None
            else self.default_environment_preference
        )

        if options.gateway_id:
            for gateway in gateways:
                if gateway.id == options.gateway_id:
                    return GatewayResolution(gateway=gateway)
            return GatewayResolution(reason=ResolutionReason.NOT_FOUND)

        if options.provider:
            provider = options.provider.lower()
            matches = [g for g in gateways if (g.provider or "").lower() == provider]
            if not matches:
                return GatewayResolution(reason=ResolutionReason.NOT_FOUND)
            return self.pick_by_environment(matches, environment_order)

        if len(gateways) == 1:
            return GatewayResolution(gateway=gateways[0])

        return self.pick_by_environment(gateways, environment_order)

    def pick_by_environment(self, gateways: Sequence[Gateway], environment_order: Sequence[str]) -> GatewayResolution:
        """
        Select the gateway whose environment ranks best in `environment_order`.

        Gateways with an environment missing from the order share the worst
        weight. Two or more gateways at the best weight is ambiguous.
        """
        if not gateways:
            return GatewayResolution(reason=ResolutionReason.NOT_FOUND)

        weights: Dict[str, int] = {}
        for index, environment in enumerate(environment_order):
            weights.setdefault((environment or "").lower(), index)
        worst = len(environment_order)

        best_weight = None
        best: List[Gateway] = []
        for gateway in gateways:
            weight = weights.get((gateway.environment or "").lower(), worst)
            if best_weight is None or weight < best_weight:
                best_weight = weight
                best = [gateway]
            elif weight == best_weight:
                best.append(gateway)

        if len(best) > 1:
            logger.debug(
                f"{len(best)} gateways tied at environment weight {best_weight}: "
                f"{', '.join(g.id for g in best)}"
            )
            return GatewayResolution(reason=ResolutionReason.AMBIGUOUS)

        return GatewayResolution(gateway=best[0])


def resolve_gateway(gateways: Sequence[Gateway], options: OptionsLike = None) -> GatewayResolution:
    return GatewayResolver().resolve(gateways, options)


def describe_failure(church_id: str, reason: Optional[ResolutionReason], options: GetGatewayOptions) -> str:
    """Human readable reason a gateway could not be resolved"""
    if options.gateway_id:
        return f"Gateway {options.gateway_id} is not configured for church {church_id}."

    if reason == ResolutionReason.AMBIGUOUS:
        qualifier = f"{options.provider} " if options.provider else ""
        return (
            f"Multiple {qualifier}payment gateways are configured for church {church_id}. "
            "Provide a gatewayId or environment preference to disambiguate."
        )

    if options.provider:
        return f"No {options.provider} gateway configured for church {church_id}."

    return f"No payment gateway configured for church {church_id}."
