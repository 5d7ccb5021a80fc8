"""Pick a shipping box for an order from its line items."""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from boxsync import settings
from boxsync.errors import ReferenceDataError
from boxsync.queue.models import LineItem
from boxsync.reference_cache import BoxClass, ReferenceSnapshot


@dataclass(frozen=True)
class BoxAssignment:
    """Result of a box decision for one order.

    Attributes:
        total_size: Sum of unit size times quantity over all line items
        box: The selected box class
        box_name: Label to send downstream (single-unit boxes are renamed)
        fulfillment_status: Status string, always carrying the original box name
        missing_skus: SKUs not found in the snapshot, in first-seen order
        fits: False when the order exceeded every box and the largest was used
    """

    total_size: float
    box: BoxClass
    box_name: str
    fulfillment_status: str
    missing_skus: List[str] = field(default_factory=list)
    fits: bool = True

    def as_result(self) -> dict:
        return {
            "total_size": self.total_size,
            "box": self.box.name,
            "box_name": self.box_name,
            "box_capacity": self.box.max_capacity,
            "fulfillment_status": self.fulfillment_status,
            "missing_skus": list(self.missing_skus),
            "fits": self.fits,
        }


def compute_total_size(line_items: Iterable[LineItem], snapshot: ReferenceSnapshot, default_unit_size: float):
    """Return (total size, missing SKUs) for the given items."""
    total = 0.0
    missing = []
    for item in line_items:
        product = snapshot.product(item.sku)
        if product is None:
            unit_size = default_unit_size
            if item.sku not in missing:
                missing.append(item.sku)
        else:
            unit_size = product.unit_size
        total += unit_size * item.quantity
    return total, missing


def select_box(total_size: float, box_classes: Iterable[BoxClass]):
    """Smallest box that holds total_size, else the largest box overall.

    Returns (box, fits). Ties on capacity are broken by name.
    """
    ordered = sorted(box_classes, key=lambda b: (b.max_capacity, b.name))
    if not ordered:
        raise ReferenceDataError("no box classes available")
    for box in ordered:
        if box.max_capacity >= total_size:
            return box, True
    largest = max(ordered, key=lambda b: (b.max_capacity, b.name))
    return largest, False


def assign_box(
    line_items: Iterable[LineItem],
    snapshot: ReferenceSnapshot,
    default_unit_size: Optional[float] = None,
    single_box_name: Optional[str] = None,
    single_box_label: Optional[str] = None,
    status_template: Optional[str] = None,
) -> BoxAssignment:
    """
    Decide the box for an order.

    Unknown SKUs fall back to the default unit size and are reported, they
    never block the order. An empty product or box table does.

    Raises:
        ReferenceDataError: when the snapshot has no products or no box classes
    """
    if default_unit_size is None:
        default_unit_size = settings.DEFAULT_UNIT_SIZE
    single_box_name = single_box_name if single_box_name is not None else settings.SINGLE_BOX_NAME
    single_box_label = single_box_label if single_box_label is not None else settings.SINGLE_BOX_LABEL
    status_template = status_template or settings.FULFILLMENT_STATUS_TEMPLATE

    if not snapshot.products:
        raise ReferenceDataError("no products in reference cache")
    if not snapshot.box_classes:
        raise ReferenceDataError("no box classes in reference cache")

    total_size, missing = compute_total_size(line_items, snapshot, default_unit_size)
    box, fits = select_box(total_size, snapshot.box_classes)

    box_name = box.name
    if box.name.strip().lower() == single_box_name.strip().lower():
        box_name = single_box_label

    return BoxAssignment(
        total_size=total_size,
        box=box,
        box_name=box_name,
        fulfillment_status=status_template.format(box=box.name),
        missing_skus=missing,
        fits=fits,
    )
