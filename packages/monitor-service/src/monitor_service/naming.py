"""Alert key normalization.

Keys drop hyphens and underscores from the service and alert names, then
join the two with an underscore. The separator never survives inside a
part, so a key splits back into exactly one (service, alert) pair and a
service prefix never matches another service's keys. Every place that
derives or matches a key goes through these helpers so identical input
always yields identical keys.
"""

KEY_SEPARATOR = "_"


def normalize(name: str) -> str:
    """Strip characters that are ambiguous in a rule name."""
    return name.replace("-", "").replace("_", "")


def alert_key(service_name: str, alert_name: str) -> str:
    """Key an alert is stored (and rendered) under."""
    return f"{normalize(service_name)}{KEY_SEPARATOR}{normalize(alert_name)}"


def service_prefix(service_name: str) -> str:
    """Prefix shared by every alert key of a service."""
    return f"{normalize(service_name)}{KEY_SEPARATOR}"
