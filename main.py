# main.py
import logging
import sys
from typing import Dict, List, Optional

import structlog
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QGridLayout,
    QLabel, QPushButton, QComboBox, QSpinBox, QCheckBox, QTableWidget,
    QTableWidgetItem, QHeaderView
)
from PySide6.QtCore import Signal, Slot

from models import (
    BloodGroup, BloodProduct, Urgency, RequestConfig, RequestStatus,
    MIN_UNITS, MAX_UNITS
)
from sender import RequestTracker
from settings import Settings, get_settings
from store import RecipientStore

logger = structlog.get_logger(__name__)

APP_STYLE = """
QMainWindow { background-color: #1a2332; color: #ffffff; }
QWidget { color: #e6eef7; }
QPushButton { background: #233044; color: #ff6b6b; padding: 6px; border-radius: 6px; }
QPushButton:disabled { color: #6b7a8c; }
QComboBox, QSpinBox { background: #0f1720; color: #e6eef7; border: 1px solid #2b3948; padding: 4px; border-radius: 4px; }
QLabel#errorBanner { background: #4a1f1f; color: #ffd2d2; padding: 8px; border-radius: 6px; }
"""

STATUS_LABELS = {
    None: "Not Sent",
    RequestStatus.PENDING: "⏳ Sending...",
    RequestStatus.SENT: "📤 Sent",
    RequestStatus.AVAILABLE: "✅ Available",
    RequestStatus.UNAVAILABLE: "❌ Unavailable",
    RequestStatus.PARTIAL: "⚠️ Partial",
    RequestStatus.FAILED: "⚠️ Failed",
}

NO_BANKS_TEXT = "No blood banks found within 10km radius"


def status_label(status: Optional[RequestStatus]) -> str:
    return STATUS_LABELS.get(status, "Not Sent")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=settings.log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if settings.log_json
            else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class RequestForm(QWidget):
    """
    Blood group, units, urgency and product selection. Emits the rebuilt
    RequestConfig after every edit.
    """
    config_changed = Signal(object)

    def __init__(self, config: RequestConfig, parent=None):
        super().__init__(parent)
        self.config = config

        self.blood_group = QComboBox()
        self.blood_group.addItems([g.value for g in BloodGroup])
        self.blood_group.setCurrentText(config.blood_group.value)
        self.blood_group.currentTextChanged.connect(
            lambda text: self._update(blood_group=text))

        self.units = QSpinBox()
        self.units.setRange(MIN_UNITS, MAX_UNITS)
        self.units.setValue(config.units_needed)
        self.units.valueChanged.connect(lambda value: self._update(units_needed=value))

        self.urgency = QComboBox()
        self.urgency.addItems([u.value for u in Urgency])
        self.urgency.setCurrentText(config.urgency.value)
        self.urgency.currentTextChanged.connect(lambda text: self._update(urgency=text))

        self.product_boxes: Dict[BloodProduct, QCheckBox] = {}
        products_layout = QGridLayout()
        for i, product in enumerate(BloodProduct):
            box = QCheckBox(product.value)
            box.setChecked(product in config.products)
            box.toggled.connect(lambda _checked, p=product: self._toggle(p))
            self.product_boxes[product] = box
            products_layout.addWidget(box, i // 3, i % 3)

        row = QHBoxLayout()
        row.addWidget(QLabel("Blood Group:"))
        row.addWidget(self.blood_group)
        row.addWidget(QLabel("Units Needed:"))
        row.addWidget(self.units)
        row.addWidget(QLabel("Urgency Level:"))
        row.addWidget(self.urgency)

        layout = QVBoxLayout()
        layout.addWidget(QLabel("<b>🩸 Blood Request Details</b>"))
        layout.addLayout(row)
        layout.addWidget(QLabel("Blood Products Needed:"))
        layout.addLayout(products_layout)
        self.setLayout(layout)

    def _update(self, **changes):
        self.config = self.config.with_changes(**changes)
        self.config_changed.emit(self.config)

    def _toggle(self, product: BloodProduct):
        self.config = self.config.toggle_product(product)
        self.config_changed.emit(self.config)


class BankTable(QTableWidget):
    """Rows of blood banks with their request status and action button."""
    send_requested = Signal(str)

    HEADERS = ["BLOOD BANK", "PHONE", "DISTANCE", "STATUS", "ACTION"]

    def __init__(self, parent=None):
        super().__init__(0, len(self.HEADERS), parent)
        self.setHorizontalHeaderLabels(self.HEADERS)
        self.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self._rows: Dict[str, int] = {}
        self.buttons: Dict[str, QPushButton] = {}

    def populate(self, recipients, statuses: Dict[str, RequestStatus]):
        self.clearSpans()
        self.setRowCount(0)
        self._rows.clear()
        self.buttons.clear()
        if not recipients:
            self.insertRow(0)
            self.setSpan(0, 0, 1, len(self.HEADERS))
            self.setItem(0, 0, QTableWidgetItem(NO_BANKS_TEXT))
            return
        for r in recipients:
            idx = self.rowCount()
            self.insertRow(idx)
            self._rows[r.key] = idx
            self.setItem(idx, 0, QTableWidgetItem(r.name))
            self.setItem(idx, 1, QTableWidgetItem(r.phone))
            self.setItem(idx, 2, QTableWidgetItem(r.distance_label))
            self.setItem(idx, 3, QTableWidgetItem())
            btn = QPushButton()
            btn.clicked.connect(lambda _checked=False, key=r.key: self.send_requested.emit(key))
            self.buttons[r.key] = btn
            self.setCellWidget(idx, 4, btn)
            self.set_status(r.key, statuses.get(r.key))

    def set_status(self, key: str, status: Optional[RequestStatus]):
        idx = self._rows.get(key)
        if idx is None:
            return
        self.item(idx, 3).setText(status_label(status))
        btn = self.buttons[key]
        btn.setText("✓ Sent" if status is not None else "Send Request")
        btn.setEnabled(status is None)

    def status_text(self, key: str) -> str:
        return self.item(self._rows[key], 3).text()


class MainWindow(QMainWindow):
    def __init__(self, store: RecipientStore, tracker: RequestTracker,
                 config: Optional[RequestConfig] = None):
        super().__init__()
        self.setWindowTitle("Request Blood from Banks")
        self.setMinimumSize(900, 650)
        self.store = store
        self.tracker = tracker
        self.config = config or RequestConfig()

        self.error_banner = QLabel()
        self.error_banner.setObjectName("errorBanner")
        self.error_banner.setWordWrap(True)
        self.error_banner.hide()

        self.form = RequestForm(self.config)
        self.form.config_changed.connect(self.on_config_changed)

        self.send_all_btn = QPushButton("Send All Requests")
        self.send_all_btn.clicked.connect(self.send_all)

        self.table = BankTable()
        self.table.send_requested.connect(self.send_one)

        self.sent_label = QLabel()
        self.failed_label = QLabel()
        self.responded_label = QLabel()

        header = QHBoxLayout()
        header.addWidget(QLabel("<b>Send Requests to Blood Banks</b>"))
        header.addStretch(1)
        header.addWidget(self.send_all_btn)

        counters = QHBoxLayout()
        counters.addWidget(self.sent_label)
        counters.addWidget(self.failed_label)
        counters.addWidget(self.responded_label)

        layout = QVBoxLayout()
        layout.addWidget(QLabel("<h2>Request Blood from Banks</h2>"))
        layout.addWidget(QLabel("Send urgent blood requests to nearby blood banks"))
        layout.addWidget(self.error_banner)
        layout.addWidget(self.form)
        layout.addLayout(header)
        layout.addWidget(self.table)
        layout.addLayout(counters)
        central = QWidget()
        central.setLayout(layout)
        self.setCentralWidget(central)

        self.tracker.status_changed.connect(self.on_status_changed)
        self.refresh()

    def refresh(self):
        if self.store.error:
            self.error_banner.setText(
                f"⚠️ {self.store.error}\nUsing fallback data. Start the blood bank API and reopen to use live data.")
            self.error_banner.show()
        else:
            self.error_banner.hide()
        self.table.populate(self.store.recipients, self.tracker.statuses())
        self._update_counters()

    @Slot(object)
    def on_config_changed(self, config: RequestConfig):
        self.config = config

    @Slot(str)
    def send_one(self, key: str):
        self.tracker.dispatch(key, self.config)

    @Slot()
    def send_all(self) -> List[str]:
        return self.tracker.dispatch_all(self.store.keys(), self.config)

    @Slot(str, str)
    def on_status_changed(self, key: str, status: str):
        self.table.set_status(key, RequestStatus(status))
        self._update_counters()

    def _update_counters(self):
        counts = self.tracker.counts()
        responded = sum(counts[s] for s in (RequestStatus.AVAILABLE, RequestStatus.UNAVAILABLE,
                                            RequestStatus.PARTIAL))
        self.sent_label.setText(f"Sent: {counts[RequestStatus.SENT] + responded}")
        self.failed_label.setText(f"Failed: {counts[RequestStatus.FAILED]}")
        self.responded_label.setText(f"Responded: {responded}")

    def closeEvent(self, event):
        self.tracker.shutdown()
        super().closeEvent(event)


def main():
    settings = get_settings()
    configure_logging(settings)
    app = QApplication(sys.argv)
    app.setStyleSheet(APP_STYLE)

    loading = QLabel("🏥 Loading nearby blood banks...")
    loading.show()
    app.processEvents()
    store = RecipientStore(fallback_path=settings.fallback_csv_path)
    store.load()
    loading.close()
    tracker = RequestTracker(response_delay_ms=settings.response_delay_ms,
                             concurrency=settings.concurrency)
    logger.info("application_starting", banks=len(store), source=store.source)

    mw = MainWindow(store, tracker)
    mw.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
