from .geometry import OverlayBox, compute_overlay, format_label, overlay_for_result

__all__ = ['OverlayBox', 'compute_overlay', 'format_label', 'overlay_for_result']
