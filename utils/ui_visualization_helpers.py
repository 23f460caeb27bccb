# utils/ui_visualization_helpers.py
# Presentation helpers for the TVI Streamlit pages:
#   1. A Plotly theme and color lookups keyed by safety rating / risk level.
#   2. HTML components (KPI card, traffic light) styled by style_web_reports.css.
#   3. Plotly figures for score trends, rating/risk distributions and component sub-scores.

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
import plotly.io as pio
import pandas as pd
import logging
import html
from config import app_config
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

# --- I. Core Theming and Color Utilities ---

def _get_theme_color(index: Any = 0, fallback_color: str = app_config.COLOR_ACTION_PRIMARY, color_type: str = "general") -> str:
    """
    Retrieves a color for a chart element.
    'safety_rating' and 'risk_level' look `index` up in the configured palettes; other types fall back
    to the active Plotly colorway, then to fallback_color.
    """
    try:
        if color_type == "risk_high": return app_config.COLOR_RISK_HIGH
        if color_type == "risk_moderate": return app_config.COLOR_RISK_MODERATE
        if color_type == "risk_low": return app_config.COLOR_RISK_LOW
        if color_type == "action_primary": return app_config.COLOR_ACTION_PRIMARY
        if color_type == "action_secondary": return app_config.COLOR_ACTION_SECONDARY
        if color_type == "safety_rating":
            return app_config.SAFETY_RATING_COLORS.get(str(index).lower(), fallback_color)
        if color_type == "risk_level":
            return app_config.RISK_LEVEL_COLORS.get(str(index).lower(), fallback_color)

        active_template_name = pio.templates.default
        colorway_to_use = px.colors.qualitative.Plotly
        if active_template_name and active_template_name in pio.templates:
            current_template_layout = pio.templates[active_template_name].layout
            if hasattr(current_template_layout, 'colorway') and current_template_layout.colorway:
                colorway_to_use = current_template_layout.colorway

        if colorway_to_use:
            num_idx_for_color = index if isinstance(index, int) else abs(hash(str(index)))
            return colorway_to_use[num_idx_for_color % len(colorway_to_use)]
    except Exception as e_get_color:
        logger.warning(f"Could not retrieve theme color for index/key '{index}', type '{color_type}': {e_get_color}. Using fallback: {fallback_color}")
    return fallback_color


def set_tvi_plotly_theme_web():
    """Registers the 'tvi_web_theme' Plotly template and makes it the default."""
    theme_font_family_web = '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif'
    theme_text_color_web = app_config.COLOR_RISK_NEUTRAL
    theme_grid_color_web = "#E0E0E0"
    theme_border_color_web = "#BDBDBD"

    tvi_colorway_list = [
        app_config.COLOR_ACTION_PRIMARY,
        app_config.COLOR_RISK_LOW,
        app_config.COLOR_RISK_MODERATE,
        app_config.COLOR_RISK_HIGH,
        "#00ACC1",
        "#5E35B1",
    ]
    tvi_colorway_list.extend(px.colors.qualitative.Bold[len(tvi_colorway_list):])

    axis_settings = dict(gridcolor=theme_grid_color_web, linecolor=theme_border_color_web, zerolinecolor=theme_grid_color_web,
                         zerolinewidth=1, title_font_size=12, tickfont_size=10, automargin=True, title_standoff=12)
    layout_settings_web = {
        'font': dict(family=theme_font_family_web, size=11, color=theme_text_color_web),
        'paper_bgcolor': "#FFFFFF",
        'plot_bgcolor': "#FAFAFA",
        'colorway': tvi_colorway_list,
        'xaxis': axis_settings,
        'yaxis': axis_settings,
        'title': dict(
            font=dict(family=theme_font_family_web, size=16, color=app_config.COLOR_ACTION_SECONDARY),
            x=0.02, xanchor='left', y=0.96, yanchor='top', pad=dict(t=25, b=10, l=2)
        ),
        'legend': dict(bgcolor='rgba(255,255,255,0.9)', bordercolor=theme_border_color_web, borderwidth=0.5,
                       orientation='h', yanchor='bottom', y=1.01, xanchor='right', x=1, font_size=10),
        'margin': dict(l=60, r=20, t=70, b=50),
    }

    pio.templates["tvi_web_theme"] = go.layout.Template(layout=go.Layout(**layout_settings_web))
    pio.templates.default = "plotly+tvi_web_theme"
    logger.info("Plotly theme 'tvi_web_theme' set as default.")

set_tvi_plotly_theme_web()


# --- II. HTML-Based UI Components ---
# Class names match assets/style_web_reports.css.

_STATUS_CSS_CLASSES = {
    "critical": "status-high", "high": "status-high", "high_risk": "status-high", "poor": "status-high",
    "moderate": "status-moderate", "moderate_risk": "status-moderate", "fair": "status-moderate", "warning": "status-moderate",
    "low": "status-low", "low_risk": "status-low", "good": "status-low", "excellent": "status-low", "ok": "status-low",
    "neutral": "status-neutral", "unknown": "status-neutral",
}

def status_level_for_score(tvi_score: Optional[float]) -> str:
    """Maps a TVI score onto the card/traffic-light status vocabulary via its safety rating thresholds."""
    if tvi_score is None or pd.isna(tvi_score):
        return "neutral"
    for min_score, rating in app_config.TVI_SAFETY_RATING_THRESHOLDS:
        if tvi_score >= min_score:
            return rating
    return app_config.TVI_SAFETY_RATING_FLOOR

def render_web_kpi_card(title: str, value: str, icon: str = "●", status_level: str = "neutral",
                        delta: Optional[str] = None, delta_is_positive: Optional[bool] = None,
                        help_text: Optional[str] = None, units: Optional[str] = ""):
    """
    Renders a KPI card. status_level accepts risk levels, safety ratings or 'neutral'.
    A positive delta renders green, a negative one red.
    """
    css_status_class = _STATUS_CSS_CLASSES.get(str(status_level).lower(), "status-neutral")

    delta_html_content = ""
    if delta is not None and str(delta).strip():
        delta_class = ""
        if delta_is_positive is True: delta_class = "positive"
        elif delta_is_positive is False: delta_class = "negative"
        delta_html_content = f'<p class="kpi-delta {delta_class}">{html.escape(str(delta))}</p>'

    tooltip_attr = f'title="{html.escape(str(help_text))}"' if help_text and str(help_text).strip() else ''
    value_units_html = f"{html.escape(str(value))}<span class='kpi-units'>{html.escape(str(units))}</span>" if units else html.escape(str(value))

    html_render_content = f"""
    <div class="kpi-card {css_status_class}" {tooltip_attr}>
        <div class="kpi-card-header">
            <div class="kpi-icon">{html.escape(str(icon))}</div>
            <h3 class="kpi-title">{html.escape(str(title))}</h3>
        </div>
        <div class="kpi-body">
            <p class="kpi-value">{value_units_html}</p>
            {delta_html_content}
        </div>
    </div>
    """.replace("\n", "")
    st.markdown(html_render_content, unsafe_allow_html=True)

def render_web_traffic_light_indicator(message: str, status_level: str, details_text: str = ""):
    """Single-line status indicator; the dot color follows the same status vocabulary as the KPI card."""
    dot_css_class = _STATUS_CSS_CLASSES.get(str(status_level).lower(), "status-neutral")
    details_html_span = f'<span class="traffic-light-details">{html.escape(str(details_text))}</span>' if details_text and str(details_text).strip() else ""
    html_render_content = f"""
    <div class="traffic-light-indicator">
        <span class="traffic-light-dot {dot_css_class}"></span>
        <span class="traffic-light-message">{html.escape(str(message))}</span>
        {details_html_span}
    </div>
    """.replace("\n", "")
    st.markdown(html_render_content, unsafe_allow_html=True)


# --- III. Plotly Chart Generation Functions ---

def _create_empty_plot_figure(title_str: str, height_val: Optional[int], message_str: str = "No data available to display.") -> go.Figure:
    fig_empty = go.Figure()
    final_fig_height = height_val if height_val is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    fig_empty.update_layout(
        title_text=f"{title_str}: {message_str}",
        height=final_fig_height,
        xaxis={'visible': False},
        yaxis={'visible': False},
        annotations=[dict(text=message_str, xref="paper", yref="paper", showarrow=False,
                          font=dict(size=12, color=_get_theme_color(color_type="action_secondary")))]
    )
    return fig_empty


def plot_tvi_trend_line_web(
    score_series: pd.Series, chart_title: str, y_axis_label: str = "TVI Score",
    line_color: Optional[str] = None,
    show_rating_bands: bool = True,
    target_ref_line: Optional[float] = None, target_ref_label: Optional[str] = None,
    chart_height: Optional[int] = None,
    date_display_format: str = "%d-%b-%y %H:%M",
) -> go.Figure:
    """
    Line chart of TVI scores over calculation time (see core_data_processing.get_tvi_trend_data).
    Optional shaded bands mark the safety rating thresholds; the y axis is fixed to the score range.
    """
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_COMPACT_HEIGHT
    if not isinstance(score_series, pd.Series) or score_series.empty:
        return _create_empty_plot_figure(chart_title, final_chart_height)

    scores_clean = pd.to_numeric(score_series, errors='coerce')
    if scores_clean.isnull().all():
        return _create_empty_plot_figure(chart_title, final_chart_height, "All data non-numeric or became NaN.")

    fig_line = go.Figure()
    chosen_line_color = line_color if line_color else _get_theme_color(0)
    hovertemplate_line = f'<b>Calculated</b>: %{{x|{date_display_format}}}<br><b>{y_axis_label}</b>: %{{y:.1f}}<extra></extra>'

    if show_rating_bands:
        upper_bound = app_config.TVI_SCORE_MAX
        for min_score, rating in app_config.TVI_SAFETY_RATING_THRESHOLDS:
            fig_line.add_hrect(y0=min_score, y1=upper_bound, line_width=0, opacity=0.08,
                               fillcolor=_get_theme_color(rating, color_type="safety_rating"))
            upper_bound = min_score
        fig_line.add_hrect(y0=app_config.TVI_SCORE_MIN, y1=upper_bound, line_width=0, opacity=0.08,
                           fillcolor=_get_theme_color(app_config.TVI_SAFETY_RATING_FLOOR, color_type="safety_rating"))

    fig_line.add_trace(go.Scatter(
        x=scores_clean.index, y=scores_clean.values,
        mode="lines+markers", name=y_axis_label,
        line=dict(color=chosen_line_color, width=2.2), marker=dict(size=6),
        hovertemplate=hovertemplate_line
    ))

    if target_ref_line is not None:
        target_display_label = target_ref_label if target_ref_label else f"Target: {target_ref_line:,.0f}"
        fig_line.add_hline(y=target_ref_line, line_dash="dash", line_color=_get_theme_color(color_type="risk_high"), line_width=1.2,
                           annotation_text=target_display_label, annotation_position="bottom right", annotation_font_size=9)

    final_x_axis_label = scores_clean.index.name if scores_clean.index.name and str(scores_clean.index.name).strip() else "Date/Time"
    final_x_axis_label = str(final_x_axis_label).replace('_', ' ').title()
    fig_line.update_layout(title_text=chart_title, xaxis_title=final_x_axis_label,
                           yaxis=dict(title_text=y_axis_label, range=[app_config.TVI_SCORE_MIN, app_config.TVI_SCORE_MAX]),
                           height=final_chart_height, hovermode="x unified", showlegend=False)
    return fig_line


def plot_bar_chart_web(
    df_input: pd.DataFrame, x_col: str, y_col: str, title: str,
    color_type: str = "general", y_is_count: bool = True,
    category_order: Optional[list] = None,
    chart_height: Optional[int] = None,
) -> go.Figure:
    """Bar per category; color_type 'risk_level' or 'safety_rating' colors bars by their category."""
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    if not isinstance(df_input, pd.DataFrame) or df_input.empty or x_col not in df_input.columns or y_col not in df_input.columns:
        return _create_empty_plot_figure(title, final_chart_height)

    df_bar = df_input[[x_col, y_col]].copy()
    df_bar[y_col] = pd.to_numeric(df_bar[y_col], errors='coerce').fillna(0)
    if category_order:
        df_bar[x_col] = pd.Categorical(df_bar[x_col], categories=category_order, ordered=True)
        df_bar = df_bar.sort_values(x_col)
    categories = [str(c) for c in df_bar[x_col]]

    bar_colors = [_get_theme_color(cat, color_type=color_type) for cat in categories]
    text_format = 'd' if y_is_count else '.1f'
    fig_bar = go.Figure(go.Bar(
        x=[c.title() for c in categories], y=df_bar[y_col].values,
        marker_color=bar_colors, text=df_bar[y_col].values, texttemplate=f'%{{text:{text_format}}}', textposition='outside',
        hovertemplate=f'<b>%{{x}}</b><br>{y_col.replace("_", " ").title()}: %{{y:{text_format}}}<extra></extra>'
    ))
    yaxis_bar_config: Dict[str, Any] = dict(title_text=y_col.replace('_', ' ').title(), rangemode='tozero')
    if y_is_count:
        yaxis_bar_config['tickformat'] = 'd'
        if df_bar[y_col].max() <= 10: yaxis_bar_config['dtick'] = 1
    fig_bar.update_layout(title_text=title, xaxis_title=x_col.replace('_', ' ').title(), yaxis=yaxis_bar_config,
                          height=final_chart_height, showlegend=False)
    return fig_bar


def plot_donut_chart_web(
    df_input: pd.DataFrame, labels_col: str, values_col: str, title: str,
    color_type: str = "general", chart_height: Optional[int] = None,
) -> go.Figure:
    """Donut of category shares; zero-count categories are left out."""
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_COMPACT_HEIGHT
    if not isinstance(df_input, pd.DataFrame) or df_input.empty or labels_col not in df_input.columns or values_col not in df_input.columns:
        return _create_empty_plot_figure(title, final_chart_height)

    df_donut = df_input[[labels_col, values_col]].copy()
    df_donut[values_col] = pd.to_numeric(df_donut[values_col], errors='coerce').fillna(0)
    df_donut = df_donut[df_donut[values_col] > 0]
    if df_donut.empty:
        return _create_empty_plot_figure(title, final_chart_height)

    labels = [str(label) for label in df_donut[labels_col]]
    fig_donut = go.Figure(go.Pie(
        labels=[label.title() for label in labels], values=df_donut[values_col].values, hole=0.55, sort=False,
        marker=dict(colors=[_get_theme_color(label, color_type=color_type) for label in labels],
                    line=dict(color="#FFFFFF", width=1.5)),
        textinfo='percent', hovertemplate='<b>%{label}</b><br>Count: %{value}<br>%{percent}<extra></extra>'
    ))
    fig_donut.update_layout(title_text=title, height=final_chart_height,
                            legend=dict(orientation='v', yanchor='middle', y=0.5, xanchor='left', x=1.02))
    return fig_donut


def plot_component_scores_web(components: Dict[str, float], title: str, smoothness_index: Optional[float] = None,
                              chart_height: Optional[int] = None) -> go.Figure:
    """
    Horizontal bars for the peak / sustained / pattern sub-scores (and the smoothness index when given),
    each colored by the safety rating its value would earn.
    """
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_COMPACT_HEIGHT
    if not components:
        return _create_empty_plot_figure(title, final_chart_height)

    bars = {str(name).replace('_', ' ').title(): float(value) for name, value in components.items()}
    if smoothness_index is not None:
        bars["Smoothness Index"] = float(smoothness_index)
    names = list(bars.keys())
    values = list(bars.values())

    fig_components = go.Figure(go.Bar(
        x=values, y=names, orientation='h',
        marker_color=[_get_theme_color(status_level_for_score(v), color_type="safety_rating") for v in values],
        text=[f"{v:.1f}" for v in values], textposition='auto',
        hovertemplate='<b>%{y}</b>: %{x:.1f}<extra></extra>'
    ))
    fig_components.update_layout(title_text=title, height=final_chart_height, showlegend=False,
                                 xaxis=dict(title_text="Score", range=[app_config.TVI_SCORE_MIN, app_config.TVI_SCORE_MAX]),
                                 yaxis=dict(autorange='reversed'))
    return fig_components
