import io
import base64
from typing import Optional

from matplotlib.figure import Figure

from .aggregation import volume_series
from .models import DailySummary


def volume_chart(summaries: list[DailySummary]) -> Optional[str]:
    """Render total volume per day (oldest first) as a base64 PNG line chart."""
    if not summaries:
        return None
    dates, volumes = volume_series(summaries)
    fig = Figure(figsize=(7.5, 3.5), dpi=100, facecolor='white')
    ax = fig.add_subplot(111)
    ax.plot(dates, volumes, marker='o', color='#007bff', linewidth=1.5)
    ax.set_title('Total Volume per Day (kg)', fontsize=10)
    ax.set_ylabel('Volume (kg)', fontsize=8)
    ax.tick_params(axis='x', labelsize=7, labelrotation=45)
    ax.tick_params(axis='y', labelsize=8)
    ax.grid(axis='y', linestyle='--', alpha=0.7)
    fig.tight_layout(pad=2.0)
    buf = io.BytesIO()
    fig.savefig(buf, format='png')
    buf.seek(0)
    return base64.b64encode(buf.read()).decode('utf-8')
