"""
Mermaid diagram color scheme configuration.

Provides customizable color schemes for task graph visualizations with
outcome-based node coloring.
"""

from dataclasses import dataclass

_OUTCOME_CLASSES = ("pending", "completed", "interrupted", "failed")


@dataclass
class MermaidColorScheme:
    """Configurable color scheme for Mermaid task graph diagrams.

    All colors should be valid CSS colors (hex, rgb, or named colors).

    Attributes:
        pending: Tasks that have not finished (not run yet, or still parked)
        completed: Tasks whose worker reached DONE
        interrupted: Tasks cancelled while waiting or running
        failed: Tasks whose body raised an error

    Example:
        >>> scheme = MermaidColorScheme(completed="#228B22")
        >>> graph.export_mermaid(report.outcomes(), color_scheme=scheme)
    """

    pending: str = "#F0F0F0"       # Light gray - not finished
    completed: str = "#90EE90"     # Light green - success
    interrupted: str = "#FFD700"   # Gold - cancelled
    failed: str = "#FFB6C6"        # Light red - error

    stroke_width: int = 2
    stroke_color: str = "#333"

    @classmethod
    def default(cls) -> "MermaidColorScheme":
        return cls()

    @classmethod
    def dark_mode(cls) -> "MermaidColorScheme":
        return cls(
            pending="#404040",
            completed="#228B22",
            interrupted="#B8860B",
            failed="#DC143C",
            stroke_color="#EEE",
        )

    def get_style_definitions(self) -> list[str]:
        """Generate Mermaid classDef statements for this color scheme.

        Example:
            >>> MermaidColorScheme().get_style_definitions()[0]
            '    classDef pending fill:#F0F0F0,stroke:#333,stroke-width:2px'
        """
        return [
            f"    classDef {outcome} fill:{getattr(self, outcome)},"
            f"stroke:{self.stroke_color},stroke-width:{self.stroke_width}px"
            for outcome in _OUTCOME_CLASSES
        ]

    def get_status_class(self, outcome: str) -> str:
        """Get the Mermaid class suffix (e.g. ``:::completed``) for an outcome."""
        outcome_lower = outcome.lower()
        if outcome_lower in _OUTCOME_CLASSES:
            return f":::{outcome_lower}"
        return ""
