import json
import os
import streamlit as st
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.ticker import FuncFormatter

st.set_page_config(page_title="Calculadoras de Renda Fixa", layout="wide")

# ======================
# Settings persistence
# ======================
SETTINGS_FILE = "investment_settings.json"

from investment_helpers import (
    DEFAULTS,
    InvalidParameter,
    format_brl,
    format_brl_compact,
    format_dividend,
    format_duration_pt,
)
from investment_simulation import run_rentability_comparison, run_reverse_impact, result_as_dict
from b3_service import B3Service, B3ServiceError, create_supabase_client, load_history_view, pick_default_ticker, total_pages


def load_settings() -> dict:
    if os.path.exists(SETTINGS_FILE):
        try:
            with open(SETTINGS_FILE, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            merged = DEFAULTS.copy()
            if isinstance(loaded, dict):
                merged.update({k: v for k, v in loaded.items() if k in DEFAULTS})
            return merged
        except (OSError, ValueError):
            return DEFAULTS.copy()
    return DEFAULTS.copy()


def save_settings(settings: dict) -> None:
    try:
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2)
    except OSError as ex:
        st.sidebar.warning(f"Não foi possível salvar as configurações: {ex}")


def collect_settings_from_session() -> dict:
    return {k: st.session_state.get(k, DEFAULTS[k]) for k in DEFAULTS.keys()}


def on_any_change():
    save_settings(collect_settings_from_session())


brl_axis = FuncFormatter(lambda v, _pos: format_brl_compact(v))

# ----------------------
# Initialize session_state ONCE
# ----------------------
if "___initialized" not in st.session_state:
    settings = load_settings()
    for k, v in settings.items():
        st.session_state[k] = v
    st.session_state["___initialized"] = True


def _secret(name: str):
    # no secrets.toml -> fall back to environment variables
    try:
        return st.secrets.get(name)
    except Exception:
        return None


@st.cache_resource
def get_b3_service() -> B3Service:
    return B3Service(create_supabase_client(_secret("SUPABASE_URL"), _secret("SUPABASE_ANON_KEY")))


# ======================
# Sidebar
# ======================
with st.sidebar:
    st.header("Calculadoras")
    tool = st.radio(
        "Ferramenta",
        ["Comparação de Rentabilidade", "Impacto Reverso", "Histórico de FIIs"],
        key="_active_tool",
    )

    st.divider()
    st.header("Taxas")
    st.number_input("Taxa CDI anual (%)", min_value=0.0, step=0.1, key="benchmark_rate_pct", on_change=on_any_change)
    st.number_input("LCI/LCA (% do CDI)", min_value=0.0, step=1.0, key="exempt_multiplier_pct", on_change=on_any_change)
    st.number_input("CDB (% do CDI)", min_value=0.0, step=1.0, key="taxed_multiplier_pct", on_change=on_any_change)

    with st.expander("Tabela de IR regressivo (avançado)"):
        st.caption("Lista JSON: [[dias_max, alíquota], ...]. Prazos maiores pagam a alíquota final.")
        st.text_area("Faixas de IR (JSON)", key="tax_tiers_json", height=100, on_change=on_any_change)
        st.number_input("Alíquota final (decimal)", step=0.005, format="%.3f", key="tax_terminal_rate", on_change=on_any_change)

    st.divider()
    st.header("Importar/Exportar")
    st.download_button(
        label="Baixar configurações (JSON)",
        data=json.dumps(collect_settings_from_session(), indent=2),
        file_name=SETTINGS_FILE,
        mime="application/json",
    )
    uploaded_file = st.file_uploader("Carregar configurações (JSON)", type=["json"])
    if uploaded_file is not None:
        try:
            new_settings = json.load(uploaded_file)
            if isinstance(new_settings, dict):
                for k, v in new_settings.items():
                    if k in DEFAULTS:
                        st.session_state[k] = v
                save_settings(collect_settings_from_session())
                st.success("Configurações carregadas! Atualizando...")
                st.rerun()
            else:
                st.error("Formato de arquivo inválido.")
        except ValueError as e:
            st.error(f"Erro ao ler o arquivo: {e}")

    if st.button("Restaurar padrões"):
        for k, v in DEFAULTS.items():
            st.session_state[k] = v
        save_settings(DEFAULTS.copy())
        st.success("Padrões restaurados.")

settings_now = collect_settings_from_session()


# ======================
# Rentability comparison
# ======================
def page_comparison():
    st.title("Comparação de Rentabilidade")
    st.caption("LCI/LCA (isento) vs. CDB (IR regressivo) em prazos fixos, juros simples.")
    st.number_input("Valor do investimento (R$)", min_value=0.0, step=1000.0, key="comparison_amount", on_change=on_any_change)

    try:
        results = run_rentability_comparison(collect_settings_from_session())
    except InvalidParameter as e:
        st.error(f"Parâmetro inválido: {e}")
        return

    for res in results:
        row = res.as_row()
        with st.container(border=True):
            st.subheader(f"Cenário: {row['Prazo']}")
            st.write(f"Alíquota de IR (CDB): **{res.tax_rate * 100:.1f}%**")
            c1, c2 = st.columns(2)
            c1.metric("LCI/LCA — Valor total", format_brl(res.exempt_total), format_brl(res.exempt_profit))
            c2.metric("CDB — Valor total líquido", format_brl(res.taxed_net_total), format_brl(res.taxed_net_profit))
            c2.caption(f"Lucro bruto {format_brl(res.taxed_gross_profit)} · Imposto pago {format_brl(res.taxed_tax_paid)}")
            st.info(f"Melhor opção: **{res.better_option}** · Diferença líquida: {format_brl(res.difference)}")

    df = pd.DataFrame([r.as_row() for r in results])
    st.subheader("Tabela")
    st.dataframe(df, use_container_width=True)


# ======================
# Reverse impact
# ======================
def page_reverse_impact():
    st.title("Calculadora de Impacto Reverso")
    st.caption(
        "Quanto tempo leva para que a diferença líquida entre LCI/LCA e CDB "
        "atinja o valor desejado, com aportes mensais."
    )
    c1, c2, c3 = st.columns(3)
    c1.number_input("Impacto desejado (R$)", min_value=0.0, step=100.0, key="target_difference", on_change=on_any_change)
    c2.number_input("Capital atual (R$)", min_value=0.0, step=1000.0, key="initial_capital", on_change=on_any_change)
    c3.number_input("Aportes mensais (R$)", min_value=0.0, step=100.0, key="monthly_contribution", on_change=on_any_change)

    if not st.button("Calcular tempo para impacto", type="primary"):
        return

    target = float(st.session_state["target_difference"])
    try:
        with st.spinner("Simulando mês a mês..."):
            result, rows = run_reverse_impact(collect_settings_from_session())
    except InvalidParameter as e:
        st.error(f"Ocorreu um erro no cálculo. Verifique se as taxas são válidas ({e}).")
        return

    if not result.converged:
        st.error(
            f"O impacto de {format_brl(target)} não foi atingido em {result.cap_years} anos. "
            f"A diferença máxima atingida foi de {format_brl(result.best_difference)}."
        )
    else:
        st.success(f"Tempo para atingir o impacto de {format_brl(target)}:")
        st.header(format_duration_pt(result.years, result.remainder_periods))
        st.caption(f"({result.periods} meses no total)")
        m1, m2, m3 = st.columns(3)
        m1.metric("Valor líquido LCI/LCA", format_brl(result.final_value_a))
        m2.metric("Valor líquido CDB", format_brl(result.final_value_net_b))
        m3.metric("Diferença líquida final", format_brl(result.final_difference))

    if not rows:
        return
    df = pd.DataFrame(rows)

    st.subheader("Evolução mês a mês")
    fig, ax = plt.subplots()
    ax.plot(df["Mês"], df["LCI/LCA Valor"], label="LCI/LCA (líquido)")
    ax.plot(df["Mês"], df["CDB Líquido"], label="CDB (líquido)")
    ax.set_xlabel("Mês")
    ax.yaxis.set_major_formatter(brl_axis)

    ax_diff = ax.twinx()
    ax_diff.bar(df["Mês"], df["Diferença"], alpha=0.25, label="Diferença")
    ax_diff.axhline(target, linestyle="--", linewidth=1, label="Impacto desejado")
    ax_diff.yaxis.set_major_formatter(brl_axis)

    h1, l1 = ax.get_legend_handles_labels()
    h2, l2 = ax_diff.get_legend_handles_labels()
    ax.legend(h1 + h2, l1 + l2, loc="upper center", bbox_to_anchor=(0.5, -0.15), ncol=2, frameon=False)
    fig.tight_layout()
    st.pyplot(fig)

    st.dataframe(df, use_container_width=True)
    with st.expander("Resultado (JSON)"):
        st.json(result_as_dict(result))
    st.download_button(
        "Baixar CSV",
        data=df.to_csv(index=False).encode("utf-8"),
        file_name="impacto_reverso.csv",
        mime="text/csv",
    )


# ======================
# FII history
# ======================
def _range_label(months: int) -> str:
    if months >= 60:
        return "5 Anos"
    if months >= 24:
        return f"{months // 12} Anos"
    if months == 12:
        return "1 Ano"
    return f"{months} Meses"


def page_history():
    st.title("Histórico de FIIs")
    try:
        service = get_b3_service()
        tickers = service.fetch_unique_tickers()
    except B3ServiceError as e:
        st.error(f"Serviço de dados históricos não configurado: {e}")
        return
    except Exception as e:
        st.error(f"Erro ao carregar tickers: {e}")
        return

    if not tickers:
        st.info("Nenhum ticker disponível.")
        return

    default = pick_default_ticker(tickers, str(settings_now["history_default_ticker"]))
    ticker = st.selectbox("Ticker", tickers, index=tickers.index(default))
    months_back = st.select_slider(
        "Período do gráfico",
        options=[3, 6, 12, 24, 36, 60],
        key="history_months_back",
        format_func=_range_label,
        on_change=on_any_change,
    )

    page_size = int(settings_now["history_page_size"])
    if st.session_state.get("_history_ticker") != ticker:
        st.session_state["_history_ticker"] = ticker
        st.session_state["_history_page"] = 1

    try:
        view = load_history_view(service, ticker, st.session_state["_history_page"], page_size, int(months_back))
    except Exception as e:
        st.error(f"Erro ao buscar dividendos: {e}")
        return
    if view.chart_error:
        st.warning(f"Erro ao carregar o gráfico: {view.chart_error}")
    page_data, series = view.page, view.series

    if series:
        chart = pd.DataFrame(series)
        chart["trade_date"] = pd.to_datetime(chart["trade_date"])
        fig, ax = plt.subplots()
        ax.plot(chart["trade_date"], chart["price_close"], label="Preço de fechamento")
        ax.set_ylabel("Preço")
        ax.yaxis.set_major_formatter(brl_axis)
        ax_div = ax.twinx()
        ax_div.bar(chart["trade_date"], chart["dividend_value"], width=10, alpha=0.4, label="Dividendo")
        ax_div.set_ylabel("Dividendo por cota")
        h1, l1 = ax.get_legend_handles_labels()
        h2, l2 = ax_div.get_legend_handles_labels()
        ax.legend(h1 + h2, l1 + l2, loc="upper center", bbox_to_anchor=(0.5, -0.15), ncol=2, frameon=False)
        fig.autofmt_xdate()
        fig.tight_layout()
        st.pyplot(fig)
    else:
        st.caption("Sem dados para o período selecionado.")

    pages = total_pages(page_data.total_count, page_size)
    st.subheader(f"Dividendos — {ticker.upper()} ({page_data.total_count} registros)")
    table = pd.DataFrame(page_data.rows)
    if "dividend_value" in table.columns:
        table["dividend_value"] = table["dividend_value"].map(format_dividend)
    st.dataframe(table, use_container_width=True)

    p1, p2, p3 = st.columns([1, 2, 1])
    if p1.button("Anterior", disabled=st.session_state["_history_page"] <= 1):
        st.session_state["_history_page"] -= 1
        st.rerun()
    p2.caption(f"Página {st.session_state['_history_page']} de {max(pages, 1)}")
    if p3.button("Próxima", disabled=st.session_state["_history_page"] >= pages):
        st.session_state["_history_page"] += 1
        st.rerun()


if tool == "Comparação de Rentabilidade":
    page_comparison()
elif tool == "Impacto Reverso":
    page_reverse_impact()
else:
    page_history()
