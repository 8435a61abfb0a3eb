"""
Tests for the report builder and export serializer.
"""

from datetime import date

import pytest

from helpers import make_day_off, make_log
from ildang.aggregation import group_by_month
from ildang.config import ReportSettings
from ildang.models.worklog import UserSettings
from ildang.reports import (
    ExportSerializer,
    RenderableReport,
    Renderer,
    RenderError,
    ReportBuilder,
    export_file_name,
    month_label,
    report_title,
    short_date,
    won,
)


FULL_SETTINGS = UserSettings(
    id=1,
    user_name="김철수",
    bank_name="국민은행",
    bank_account="123-456",
    account_holder="김철수",
)

JUNE_LOGS = [
    make_log("2024-06-01", location="A", amount=150000),
    make_log("2024-06-02", location="A", amount=150000),
    make_day_off("2024-06-03"),
]


@pytest.fixture
def builder():
    return ReportBuilder(ReportSettings())


@pytest.fixture
def serializer():
    return ExportSerializer()


def build(builder, logs, settings=FULL_SETTINGS, start=date(2024, 6, 1), end=date(2024, 6, 30)):
    return builder.build(group_by_month(logs), settings, start, end)


class StaticRenderer(Renderer):
    """Renderer returning fixed bytes and remembering what it was given."""

    def __init__(self, image: bytes = b"\x89PNG fake"):
        self.image = image
        self.received = None

    async def render(self, report: RenderableReport) -> bytes:
        self.received = report
        return self.image


class BrokenRenderer(Renderer):

    async def render(self, report: RenderableReport) -> bytes:
        raise OSError("canvas unavailable")


class TestFormatting:

    def test_won(self):
        assert won(150000) == "150,000원"
        assert won(0) == "0원"

    def test_short_date(self):
        assert short_date(date(2024, 6, 1)) == "6/1(토)"
        assert short_date(date(2024, 6, 2)) == "6/2(일)"

    def test_month_label(self):
        assert month_label("2024-06") == "6월"
        assert month_label("2024-06", with_year=True) == "2024년 6월"

    def test_export_file_name(self):
        assert export_file_name("노임청구서", date(2024, 6, 30)) == "노임청구서_2024-06-30.png"


class TestReportTitle:

    def test_single_month(self):
        assert report_title(group_by_month(JUNE_LOGS), date(2024, 6, 1)) == "6월"

    def test_month_range_in_one_year(self):
        months = group_by_month([make_log("2024-06-01"), make_log("2024-08-01")])
        assert report_title(months, date(2024, 6, 1)) == "6월–8월"

    def test_month_range_across_years(self):
        months = group_by_month([make_log("2023-12-01"), make_log("2024-01-01")])
        assert report_title(months, date(2023, 12, 1)) == "2023년 12월–2024년 1월"

    def test_empty_report_uses_range_start(self):
        assert report_title([], date(2024, 5, 1)) == "5월"


class TestReportBuilder:

    def test_builds_view(self, builder):
        view = build(builder, JUNE_LOGS)

        assert view.title == "6월"
        assert view.payee == "김철수"
        assert view.range_start == date(2024, 6, 1)
        assert view.range_end == date(2024, 6, 30)
        assert view.grand_totals.total_amount == 300000
        assert view.bank_info.bank_name == "국민은행"
        assert view.is_multi_month is False

    def test_bank_info_requires_name_and_account(self, builder):
        view = build(builder, JUNE_LOGS, settings=UserSettings(user_name="김철수", bank_name="국민은행"))
        assert view.bank_info is None

    def test_default_payee(self, builder):
        view = build(builder, JUNE_LOGS, settings=UserSettings())
        assert view.payee == "홍길동"

    def test_empty_range(self, builder):
        view = build(builder, [])
        assert view.is_empty
        assert view.grand_totals.total_amount == 0


class TestTextExport:

    def test_single_month_text(self, builder, serializer):
        """Test the exact text of a one-month claim."""
        text = serializer.to_text(build(builder, JUNE_LOGS))

        assert text == (
            "[6월 노임 청구서 - 김철수]\n"
            "\n"
            "■ 현장별 요약\n"
            "1. A : 2일 / 300,000원\n"
            "--------------------\n"
            "총 근무: 2일\n"
            "청구 금액: 300,000원\n"
            "원천징수(3.3%): 9,900원\n"
            "실수령액: 290,100원\n"
            "\n"
            "[입금 계좌]\n"
            "국민은행 123-456\n"
            "김철수\n"
        )

    def test_text_is_deterministic(self, builder, serializer):
        view = build(builder, JUNE_LOGS)
        assert serializer.to_text(view) == serializer.to_text(build(builder, JUNE_LOGS))

    def test_hidden_amounts(self, builder, serializer):
        """Test that no money figure appears when amounts are hidden."""
        text = serializer.to_text(build(builder, JUNE_LOGS), show_amount=False)

        assert "원" not in text
        assert "실수령액" not in text
        assert "1. A : 2일\n" in text
        assert "총 근무: 2일" in text

    def test_multi_month_text(self, builder, serializer):
        logs = [
            make_log("2024-06-01", location="A", amount=100000),
            make_log("2024-07-01", location="B", amount=200000),
        ]
        text = serializer.to_text(build(builder, logs, end=date(2024, 7, 31)))

        assert text.startswith("[6월–7월 노임 청구서 - 김철수]\n")
        assert "■ 2024년 6월\n1. A : 1일 / 100,000원\n" in text
        assert "■ 2024년 7월\n1. B : 1일 / 200,000원\n" in text
        assert "■ 현장별 요약" not in text
        assert "■ 전체 합계\n총 근무: 2일\n청구 금액: 300,000원\n" in text
        assert text.index("■ 2024년 6월") < text.index("■ 2024년 7월") < text.index("■ 전체 합계")

    def test_grand_tax_is_sum_of_monthly_taxes(self, builder, serializer):
        """Test that the grand block states and uses the per-month tax rule."""
        logs = [
            make_log("2024-06-01", location="A", amount=10),
            make_log("2024-07-01", location="A", amount=10),
            make_log("2024-08-01", location="A", amount=20),
        ]
        text = serializer.to_text(build(builder, logs, end=date(2024, 8, 31)))

        assert (
            "■ 전체 합계\n"
            "총 근무: 3일\n"
            "청구 금액: 40원\n"
            "원천징수(3.3%): 0원\n"
            "실수령액: 40원\n"
            "※ 원천징수는 월별 원천징수의 합계입니다\n"
        ) in text

    def test_grand_tax_note_hidden_with_amounts(self, builder, serializer):
        logs = [
            make_log("2024-06-01", location="A", amount=100000),
            make_log("2024-07-01", location="B", amount=200000),
        ]
        text = serializer.to_text(build(builder, logs, end=date(2024, 7, 31)), show_amount=False)
        assert "※" not in text

    def test_single_month_has_no_grand_block(self, builder, serializer):
        assert "■ 전체 합계" not in serializer.to_text(build(builder, JUNE_LOGS))

    def test_details(self, builder, serializer):
        text = serializer.to_text(build(builder, JUNE_LOGS), show_details=True)

        assert "■ 상세 내역\n" in text
        assert "6/1(토) A : 150,000원\n" in text
        assert "6/3(월) 휴무\n" in text

    def test_no_bank_block_without_bank_info(self, builder, serializer):
        text = serializer.to_text(build(builder, JUNE_LOGS, settings=UserSettings(user_name="김철수")))
        assert "[입금 계좌]" not in text

    def test_empty_report_text(self, builder, serializer):
        text = serializer.to_text(build(builder, []), show_details=True)

        assert "선택한 기간에 기록이 없습니다" in text
        assert "■" not in text
        assert text.endswith("\n") and not text.endswith("\n\n")


class TestImageExport:

    @pytest.mark.asyncio
    async def test_delegates_to_renderer(self, builder, serializer):
        renderer = StaticRenderer()
        view = build(builder, JUNE_LOGS)

        image = await serializer.to_image(view, renderer, show_amount=False)

        assert image == b"\x89PNG fake"
        assert renderer.received.view == view
        assert renderer.received.show_amount is False
        assert len(renderer.received.calendars) == 1
        assert renderer.received.calendars[0].leading_blanks == 6

    @pytest.mark.asyncio
    async def test_renderer_failure(self, builder, serializer):
        with pytest.raises(RenderError):
            await serializer.to_image(build(builder, JUNE_LOGS), BrokenRenderer())

    @pytest.mark.asyncio
    async def test_empty_image_is_an_error(self, builder, serializer):
        with pytest.raises(RenderError):
            await serializer.to_image(build(builder, JUNE_LOGS), StaticRenderer(image=b""))
