from django.db import models


class ViolationKind(models.TextChoices):
    TAB_SWITCH = "TAB_SWITCH", "Tab switch"
    COPY_PASTE = "COPY_PASTE", "Copy / paste"
    RIGHT_CLICK = "RIGHT_CLICK", "Right click"
    DEV_TOOLS = "DEV_TOOLS", "Developer tools"
    FULLSCREEN_EXIT = "FULLSCREEN_EXIT", "Fullscreen exit"
    NO_FACE = "NO_FACE", "No face"
    MULTIPLE_FACES = "MULTIPLE_FACES", "Multiple faces"
    CAMERA_DISABLED = "CAMERA_DISABLED", "Camera disabled"
    SUSPICIOUS_BEHAVIOR = "SUSPICIOUS_BEHAVIOR", "Suspicious behavior"


class Severity(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    CRITICAL = "CRITICAL", "Critical"


SEVERITY_BY_KIND = {
    ViolationKind.TAB_SWITCH: Severity.MEDIUM,
    ViolationKind.COPY_PASTE: Severity.HIGH,
    ViolationKind.RIGHT_CLICK: Severity.LOW,
    ViolationKind.DEV_TOOLS: Severity.CRITICAL,
    ViolationKind.FULLSCREEN_EXIT: Severity.MEDIUM,
    ViolationKind.NO_FACE: Severity.HIGH,
    ViolationKind.MULTIPLE_FACES: Severity.CRITICAL,
    ViolationKind.CAMERA_DISABLED: Severity.HIGH,
    ViolationKind.SUSPICIOUS_BEHAVIOR: Severity.HIGH,
}

DESCRIPTION_BY_KIND = {
    ViolationKind.TAB_SWITCH: "Tab switching detected",
    ViolationKind.COPY_PASTE: "Copy/paste operation detected",
    ViolationKind.RIGHT_CLICK: "Right-click detected",
    ViolationKind.DEV_TOOLS: "Developer tools opened",
    ViolationKind.FULLSCREEN_EXIT: "Exited fullscreen mode",
    ViolationKind.NO_FACE: "No face detected in webcam",
    ViolationKind.MULTIPLE_FACES: "Multiple faces detected",
    ViolationKind.CAMERA_DISABLED: "Camera was disabled",
    ViolationKind.SUSPICIOUS_BEHAVIOR: "Suspicious behavior detected",
}

UNKNOWN_DESCRIPTION = "Unknown violation"


def normalize_kind(kind):
    """'tab-switch', 'Tab_Switch' and 'TAB_SWITCH' are the same kind."""
    return str(kind or "").strip().upper().replace("-", "_").replace(" ", "_")


def classify(kind):
    """
    Return (normalized_kind, severity, description) for a reported kind.

    Unknown kinds are still ingested at MEDIUM severity; this never raises.
    """
    normalized = normalize_kind(kind) or "UNKNOWN"
    severity = SEVERITY_BY_KIND.get(normalized, Severity.MEDIUM)
    description = DESCRIPTION_BY_KIND.get(normalized, UNKNOWN_DESCRIPTION)
    return normalized, severity, description
