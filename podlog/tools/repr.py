from typing import Optional


def disp_secret_string(input: Optional[str]) -> str:
    return "SET" if input is not None else "UNSET"


def disp_secret_blob(input: Optional[str]) -> Optional[str]:
    return "[%s bytes]" % len(input) if input is not None else None


def disp_labels(labels: Optional[dict]) -> str:
    if not labels:
        return ""

    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))
