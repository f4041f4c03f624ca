"""Modal dialog for editing the facet filters applied to queries."""

from __future__ import annotations

from typing import Any, Iterable

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QPushButton,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from ..services.facet_catalog import FacetCatalog
from ..services.filters import (
    DOCUMENT_TYPES,
    ActiveFilters,
    YearRange,
    year_choices,
)


ANY_LABEL = "Any"


def _fill_combo(combo: QComboBox, values: Iterable[Any], selected: Any = None) -> None:
    combo.blockSignals(True)
    combo.clear()
    combo.addItem(ANY_LABEL, None)
    for value in values:
        combo.addItem(str(value), value)
    if selected is not None and combo.findData(selected) < 0:
        # keep a previously applied value even if the catalog no longer lists it
        combo.addItem(str(selected), selected)
    index = combo.findData(selected) if selected is not None else 0
    combo.setCurrentIndex(max(index, 0))
    combo.blockSignals(False)


class FilterDialog(QDialog):
    """Edit a copy of the active filters; the caller applies them on accept."""

    def __init__(
        self,
        filters: ActiveFilters,
        *,
        catalog: FacetCatalog | None = None,
        years: list[int] | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Search filters")
        self.setModal(True)
        self._initial = filters
        self._years = years if years is not None else year_choices()

        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(12)

        facets = QGroupBox("Documents", self)
        form = QFormLayout(facets)
        form.setLabelAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter)
        self.faculty_combo = QComboBox(facets)
        self.department_combo = QComboBox(facets)
        self.type_combo = QComboBox(facets)
        _fill_combo(self.faculty_combo, (), filters.faculty)
        _fill_combo(self.department_combo, (), filters.department)
        _fill_combo(self.type_combo, DOCUMENT_TYPES, filters.document_type)
        form.addRow("Faculty", self._with_clear(self.faculty_combo))
        form.addRow("Department", self._with_clear(self.department_combo))
        form.addRow("Document type", self._with_clear(self.type_combo))
        layout.addWidget(facets)

        years_group = QGroupBox("Publication year", self)
        years_form = QFormLayout(years_group)
        self.range_checkbox = QCheckBox("Use a year range", years_group)
        self.range_checkbox.setChecked(filters.uses_year_range)
        years_form.addRow(self.range_checkbox)
        self.year_combo = QComboBox(years_group)
        self.start_combo = QComboBox(years_group)
        self.end_combo = QComboBox(years_group)
        _fill_combo(self.year_combo, self._years, filters.year)
        _fill_combo(self.start_combo, self._years, filters.year_range.start)
        _fill_combo(self.end_combo, self._years, filters.year_range.end)
        years_form.addRow("Year", self._with_clear(self.year_combo))
        years_form.addRow("From", self._with_clear(self.start_combo))
        years_form.addRow("To", self._with_clear(self.end_combo))
        self.range_checkbox.toggled.connect(self._on_range_toggled)
        layout.addWidget(years_group)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel,
            Qt.Orientation.Horizontal,
            self,
        )
        buttons.button(QDialogButtonBox.StandardButton.Ok).setText("Apply")
        self.reset_button = QPushButton("Reset", self)
        buttons.addButton(self.reset_button, QDialogButtonBox.ButtonRole.ResetRole)
        self.reset_button.clicked.connect(self.reset)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        self._apply_year_mode(filters.uses_year_range)

        if catalog is not None:
            catalog.faculties(self.set_faculties)
            catalog.departments(self.set_departments)

    # ------------------------------------------------------------------
    def set_faculties(self, values: list[str]) -> None:
        _fill_combo(self.faculty_combo, values, self.faculty_combo.currentData())

    def set_departments(self, values: list[str]) -> None:
        _fill_combo(self.department_combo, values, self.department_combo.currentData())

    def filters(self) -> ActiveFilters:
        base = ActiveFilters(
            faculty=self.faculty_combo.currentData(),
            department=self.department_combo.currentData(),
            document_type=self.type_combo.currentData(),
        )
        if self.range_checkbox.isChecked():
            return base.with_year_range(
                self.start_combo.currentData(), self.end_combo.currentData()
            )
        return base.with_year(self.year_combo.currentData())

    def reset(self) -> None:
        for combo in (
            self.faculty_combo,
            self.department_combo,
            self.type_combo,
            self.year_combo,
            self.start_combo,
            self.end_combo,
        ):
            combo.setCurrentIndex(0)
        self.range_checkbox.setChecked(False)

    # ------------------------------------------------------------------
    def _with_clear(self, combo: QComboBox) -> QWidget:
        wrapper = QWidget(self)
        row = QHBoxLayout(wrapper)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(combo, 1)
        clear = QToolButton(wrapper)
        clear.setText("×")
        clear.setToolTip("Clear")
        clear.clicked.connect(lambda: combo.setCurrentIndex(0))
        row.addWidget(clear)
        return wrapper

    def _on_range_toggled(self, checked: bool) -> None:
        # switching modes discards the other mode's selection
        if checked:
            self.year_combo.setCurrentIndex(0)
        else:
            self.start_combo.setCurrentIndex(0)
            self.end_combo.setCurrentIndex(0)
        self._apply_year_mode(checked)

    def _apply_year_mode(self, use_range: bool) -> None:
        self.year_combo.setEnabled(not use_range)
        self.start_combo.setEnabled(use_range)
        self.end_combo.setEnabled(use_range)


__all__ = ["FilterDialog"]
