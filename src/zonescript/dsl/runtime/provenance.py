"""
Provenance tracking for generated output.

Captures which source produced a generated file so stale output can be
detected. No timestamps: identical input must yield identical output.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import hashlib
import re


TOOL_NAME = "zonescript"

_SIGNATURE_LINE = re.compile(r"^// source-sha256: (sha256:[0-9a-f]{64})$", re.MULTILINE)


@dataclass
class Provenance:
    """
    Provenance information for one compilation.

    Rendered as the comment header of the generated file:
    - Origin: which source file the output was generated from
    - Change detection: signature of that source
    """
    filename: Optional[str] = None
    source_signature: str = ""
    syntax: str = "lua"
    tool: str = TOOL_NAME

    # Optional extra metadata
    extra: Dict[str, Any] = field(default_factory=dict)

    def header_lines(self) -> List[str]:
        """Comment lines placed at the top of the generated file."""
        origin = f" from {self.filename}" if self.filename else ""
        lines = [f"// Code generated by {self.tool}{origin}. DO NOT EDIT."]
        if self.source_signature:
            lines.append(f"// source-sha256: {self.source_signature}")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tool": self.tool,
            "filename": self.filename,
            "syntax": self.syntax,
            "sourceSignature": self.source_signature,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Provenance":
        """Create from dictionary."""
        return cls(
            filename=data.get("filename"),
            source_signature=data.get("sourceSignature", ""),
            syntax=data.get("syntax", "lua"),
            tool=data.get("tool", TOOL_NAME),
            extra=data.get("extra", {}),
        )


def compute_source_signature(source: str) -> str:
    """
    Compute a signature for source code.

    Uses SHA-256 hash of the normalized source.
    """
    # Normalize: strip whitespace, normalize line endings
    normalized = source.strip().replace('\r\n', '\n').replace('\r', '\n')
    return f"sha256:{hashlib.sha256(normalized.encode()).hexdigest()}"


def create_provenance(filename: Optional[str], source: str = "", syntax: str = "lua",
                      **extra: Any) -> Provenance:
    """
    Create a Provenance record for a compilation.

    Args:
        filename: Entrypoint file name as given on the command line
        source: Original source code (for signature)
        syntax: Front end that parsed the source
        **extra: Additional metadata to include
    """
    return Provenance(
        filename=filename,
        source_signature=compute_source_signature(source) if source else "",
        syntax=syntax,
        extra=dict(extra) if extra else {},
    )


def read_header_signature(generated: str) -> Optional[str]:
    """Extract the source signature from a generated file's header, if any."""
    match = _SIGNATURE_LINE.search(generated)
    return match.group(1) if match else None


def verify_source_signature(source: str, signature: str) -> bool:
    """
    Verify that source code matches a signature.

    Args:
        source: The source code to verify
        signature: The expected signature (e.g., "sha256:abc123...")

    Returns:
        True if the source matches the signature
    """
    computed = compute_source_signature(source)
    return computed == signature
