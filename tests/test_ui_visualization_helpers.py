# tests/test_ui_visualization_helpers.py
# Pytest tests for the theme, HTML components and Plotly figures in utils.ui_visualization_helpers.

import pytest
import pandas as pd
import plotly.graph_objects as go
import plotly.io as pio
from unittest.mock import patch

from utils.ui_visualization_helpers import (
    set_tvi_plotly_theme_web,
    _get_theme_color,
    status_level_for_score,
    render_web_kpi_card,
    render_web_traffic_light_indicator,
    _create_empty_plot_figure,
    plot_tvi_trend_line_web,
    plot_bar_chart_web,
    plot_donut_chart_web,
    plot_component_scores_web,
)
from config import app_config


@pytest.fixture(scope="module", autouse=True)
def apply_theme_for_tests():
    set_tvi_plotly_theme_web()

@pytest.fixture
def trend_series():
    index = pd.date_range("2024-03-01", periods=5, freq="D", name="calculated_at")
    return pd.Series([55.0, 62.5, 70.0, 68.0, 81.0], index=index, name="tvi_score")

@pytest.fixture
def risk_counts_df():
    return pd.DataFrame({'risk_level': ['critical', 'low', 'high', 'moderate'], 'count': [1, 4, 2, 0]})


# --- Theming and colors ---

def test_get_theme_color_specifics():
    assert _get_theme_color(color_type="risk_high") == app_config.COLOR_RISK_HIGH
    assert _get_theme_color(color_type="action_secondary") == app_config.COLOR_ACTION_SECONDARY
    assert _get_theme_color("Critical", color_type="safety_rating") == app_config.SAFETY_RATING_COLORS["critical"]
    assert _get_theme_color("moderate", color_type="risk_level") == app_config.RISK_LEVEL_COLORS["moderate"]
    assert _get_theme_color("unknown", fallback_color="#123456", color_type="risk_level") == "#123456"
    assert pio.templates.default == "plotly+tvi_web_theme"

@pytest.mark.parametrize("score, level", [(90.0, "excellent"), (70.0, "good"), (60.0, "fair"), (40.0, "poor"), (10.0, "critical"), (None, "neutral")])
def test_status_level_for_score(score, level):
    assert status_level_for_score(score) == level


# --- HTML components ---

@patch('utils.ui_visualization_helpers.st.markdown')
def test_render_web_kpi_card(mock_st_markdown):
    render_web_kpi_card(title="Average TVI", value="82.5", icon="🎯", status_level="good", units="/100")
    mock_st_markdown.assert_called_once()
    html_output = mock_st_markdown.call_args[0][0]
    assert 'class="kpi-card status-low"' in html_output
    assert '<h3 class="kpi-title">Average TVI</h3>' in html_output
    assert "<p class=\"kpi-value\">82.5<span class='kpi-units'>/100</span></p>" in html_output

    mock_st_markdown.reset_mock()
    render_web_kpi_card(title="Trend", value="Declining", status_level="CRITICAL", delta="Declining", delta_is_positive=False)
    html_delta = mock_st_markdown.call_args[0][0]
    assert 'class="kpi-card status-high"' in html_delta
    assert 'class="kpi-delta negative">Declining</p>' in html_delta

@patch('utils.ui_visualization_helpers.st.markdown')
def test_render_web_kpi_card_escapes_html(mock_st_markdown):
    render_web_kpi_card(title="<b>x</b>", value="1")
    assert "&lt;b&gt;x&lt;/b&gt;" in mock_st_markdown.call_args[0][0]

@patch('utils.ui_visualization_helpers.st.markdown')
def test_render_web_traffic_light_indicator(mock_st_markdown):
    render_web_traffic_light_indicator(message="Risk level: moderate", status_level="moderate", details_text="Analysis version 1.0")
    html_output = mock_st_markdown.call_args[0][0]
    assert 'class="traffic-light-dot status-moderate"' in html_output
    assert '<span class="traffic-light-message">Risk level: moderate</span>' in html_output
    assert '<span class="traffic-light-details">Analysis version 1.0</span>' in html_output

    mock_st_markdown.reset_mock()
    render_web_traffic_light_indicator(message="?", status_level="sideways")
    assert 'status-neutral' in mock_st_markdown.call_args[0][0]
    assert 'traffic-light-details' not in mock_st_markdown.call_args[0][0]


# --- Plotly figures ---

def test_create_empty_plot_figure():
    fig = _create_empty_plot_figure("Empty Test", 300, "No data here.")
    assert isinstance(fig, go.Figure)
    assert fig.layout.title.text == "Empty Test: No data here."
    assert fig.layout.height == 300
    assert fig.layout.xaxis.visible is False

def test_plot_tvi_trend_line_web(trend_series):
    fig = plot_tvi_trend_line_web(trend_series, "TVI Trend", target_ref_line=70)
    assert fig.layout.title.text == "TVI Trend"
    assert list(fig.data[0].y) == list(trend_series.values)
    assert tuple(fig.layout.yaxis.range) == (app_config.TVI_SCORE_MIN, app_config.TVI_SCORE_MAX)
    assert fig.layout.xaxis.title.text == "Calculated At"
    # one band per rating plus the target line
    assert len(fig.layout.shapes) == len(app_config.SAFETY_RATINGS) + 1

    no_bands = plot_tvi_trend_line_web(trend_series, "Plain", show_rating_bands=False)
    assert len(no_bands.layout.shapes) == 0

    fig_empty = plot_tvi_trend_line_web(pd.Series(dtype=float), "Empty Trend")
    assert "Empty Trend: No data available" in fig_empty.layout.title.text

def test_plot_bar_chart_web(risk_counts_df):
    fig = plot_bar_chart_web(risk_counts_df, 'risk_level', 'count', "Risk Levels", color_type="risk_level",
                             category_order=app_config.RISK_LEVELS)
    assert fig.layout.title.text == "Risk Levels"
    assert list(fig.data[0].x) == ['Low', 'Moderate', 'High', 'Critical']
    assert list(fig.data[0].y) == [4, 0, 2, 1]
    assert fig.data[0].marker.color[0] == app_config.RISK_LEVEL_COLORS['low']

    assert "Empty Bar: No data available" in plot_bar_chart_web(pd.DataFrame(), 'risk_level', 'count', "Empty Bar").layout.title.text
    assert "Missing Col: No data available" in plot_bar_chart_web(risk_counts_df, 'nope', 'count', "Missing Col").layout.title.text

def test_plot_donut_chart_web():
    ratings_df = pd.DataFrame({'safety_rating': ['excellent', 'good', 'critical'], 'count': [5, 0, 2]})
    fig = plot_donut_chart_web(ratings_df, 'safety_rating', 'count', "Safety Ratings", color_type="safety_rating")
    assert fig.layout.title.text == "Safety Ratings"
    assert list(fig.data[0].labels) == ['Excellent', 'Critical']  # zero-count slice dropped
    assert list(fig.data[0].marker.colors) == [app_config.SAFETY_RATING_COLORS['excellent'], app_config.SAFETY_RATING_COLORS['critical']]

    all_zero = ratings_df.assign(count=0)
    assert "Zeros: No data available" in plot_donut_chart_web(all_zero, 'safety_rating', 'count', "Zeros").layout.title.text

def test_plot_component_scores_web():
    components = {'peak_vibration': 95.0, 'sustained_vibration': 30.0, 'frequency_pattern': 60.0}
    fig = plot_component_scores_web(components, "Component Scores", smoothness_index=45.0)
    assert list(fig.data[0].y) == ['Peak Vibration', 'Sustained Vibration', 'Frequency Pattern', 'Smoothness Index']
    assert list(fig.data[0].x) == [95.0, 30.0, 60.0, 45.0]
    assert fig.data[0].marker.color[1] == app_config.SAFETY_RATING_COLORS['critical']

    assert "Nothing: No data available" in plot_component_scores_web({}, "Nothing").layout.title.text
