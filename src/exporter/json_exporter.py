"""JSON exporter."""
import json
from pathlib import Path
from datetime import datetime
from typing import List, Dict, Any, Optional


class JsonExporter:
    """Export converted records to JSON."""

    def export(
        self,
        output_file: Path,
        records: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Export to JSON file."""
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "metadata": {
                "created_at": datetime.now().isoformat(),
                "total_records": len(records),
                **(metadata or {}),
            },
            "records": records,
        }

        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
