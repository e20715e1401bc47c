from __future__ import annotations

import logging
from typing import Optional

import pandas as pd
import plotly.express as px
import streamlit as st

from houseplan import HousePlan, HousePlanError, ProviderError, generate_house_plan
from houseplan.ai_client import (
    GeminiClient,
    HuggingFaceImageClient,
    enhance_plan,
    generate_ai_plan,
    generate_prompt_variations,
    generate_visuals,
)
from houseplan.config import configure_logging, get_settings
from houseplan.export import cost_breakdown_frame, export_to_csv, fmt_kes
from houseplan.journey import JOURNEY_STEPS, journey_progress
from houseplan.storage import (
    completed_steps,
    delete_plan,
    get_plan,
    get_plans,
    save_plan,
    save_progress,
)

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("houseplan.app")

st.set_page_config(page_title=settings.app_name, layout="wide")

st.title("Plan Your Dream Home in Kenya")
st.caption("Enter a budget and get a house plan with Kenyan construction costs and AI visualization prompts.")

PRESETS = {
    "Starter Home": 500_000,
    "Family House": 1_500_000,
    "Executive Villa": 3_000_000,
    "Luxury Mansion": 8_000_000,
}


def current_plan() -> Optional[HousePlan]:
    data = st.session_state.get("current_plan")
    return HousePlan.from_dict(data) if data else None


def set_current_plan(plan: HousePlan, row_id: Optional[int] = None) -> None:
    st.session_state["current_plan"] = plan.to_dict()
    st.session_state["current_plan_row"] = row_id
    st.session_state.pop("prompt_variations", None)
    st.session_state.pop("prompt_source", None)
    st.session_state.pop("images", None)


with st.sidebar:
    st.header("Navigate")
    mode = st.radio("Page", ["Plan", "Prompts & visuals", "Journey", "Saved plans", "About"], index=0)

    if mode == "Plan":
        st.subheader("Your budget")
        preset = st.selectbox("Quick pick", ["Custom"] + list(PRESETS), index=0)
        default_budget = PRESETS.get(preset, 1_500_000)
        budget = st.number_input(
            "Budget (KES)",
            min_value=settings.min_budget,
            max_value=500_000_000,
            value=default_budget,
            step=50_000,
        )
        location = st.text_input("Location", value="Kenya")
        preferences = st.text_area("Preferences (AI only)", value="")

        generate = st.button("Generate plan", type="primary")
        generate_ai = st.button("Generate with AI")


def render_plan(plan: HousePlan) -> None:
    st.subheader(plan.house_type)
    if plan.source == "fallback":
        st.warning(f"Template plan used: {plan.fallback_reason or 'AI unavailable'}")

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Budget", fmt_kes(plan.budget))
    c2.metric("Floor area", f"{plan.size} m²", f"plot {plan.plot_size} m²")
    c3.metric("Bedrooms", plan.bedrooms)
    c4.metric("Timeline", plan.timeline)

    st.write(
        f"**Style:** {plan.style} • **Roofing:** {plan.roofing} • **Interior:** {plan.interior_finish}"
        + (f" • **Location:** {plan.location}" if plan.location else "")
    )

    st.markdown("#### Cost breakdown")
    df = cost_breakdown_frame(plan)
    left, right = st.columns(2)

    with left:
        show = df.copy()
        show["amount_kes"] = show["amount_kes"].map(fmt_kes)
        show["share_pct"] = show["share_pct"].map(lambda v: f"{v:.1f}%")
        st.dataframe(show, use_container_width=True, hide_index=True)
        st.write(
            f"**Total cost:** {fmt_kes(plan.total_cost)} | **Remaining:** {fmt_kes(plan.remaining)}"
        )

    with right:
        fig = px.pie(df, names="category", values="amount_kes", hole=0.4)
        fig.update_layout(height=380, margin=dict(t=20, b=20))
        st.plotly_chart(fig, use_container_width=True)

    if plan.notes:
        st.markdown("#### Notes")
        for note in plan.notes:
            st.info(note)

    if plan.ai_enhanced:
        st.markdown("#### AI insights")
        st.write("**Recommendations:**", plan.ai_enhanced.recommendations)
        st.write("**Cost optimization:**", plan.ai_enhanced.cost_optimization)
        st.write("**Materials:**", plan.ai_enhanced.materials)
        if plan.ai_enhanced.timeline:
            st.write("**Timeline:**", plan.ai_enhanced.timeline)

    st.download_button(
        label="Download cost breakdown (CSV)",
        data=export_to_csv(plan).encode("utf-8"),
        file_name=f"{plan.id}.csv",
        mime="text/csv",
    )


def render_plan_actions(plan: HousePlan) -> None:
    a1, a2, a3 = st.columns(3)

    if a1.button("Reroll"):
        rerolled = generate_house_plan(plan.budget)
        set_current_plan(rerolled.with_location(plan.location) if plan.location else rerolled)
        st.rerun()

    if a2.button("Save to history"):
        row_id = save_plan(plan, db_path=settings.db_path)
        st.session_state["current_plan_row"] = row_id
        st.success(f"Saved as plan #{row_id}.")

    if a3.button("Enhance with AI"):
        try:
            with st.spinner("Asking the AI architect..."):
                enhanced = enhance_plan(plan.budget, plan.location or "Kenya", "", client=GeminiClient.from_settings())
        except ProviderError as e:
            logger.error("Enhancement failed for %s: %s", plan.id, e)
            st.error(f"AI enhancement failed: {e}")
        else:
            set_current_plan(plan.with_enhancement(enhanced), st.session_state.get("current_plan_row"))
            st.rerun()


if mode == "Plan":
    try:
        if generate:
            set_current_plan(generate_house_plan(int(budget)).with_location(location.strip() or "Kenya"))
            st.success("Your house plan is ready!")
        elif generate_ai:
            with st.spinner("Generating an AI plan..."):
                result = generate_ai_plan(
                    int(budget),
                    location=location.strip() or "Kenya",
                    preferences=preferences.strip(),
                    client=GeminiClient.from_settings(),
                )
            set_current_plan(result.plan)
    except HousePlanError as e:
        logger.warning("Plan generation rejected: %s", e)
        st.error(str(e))

    plan = current_plan()
    if plan is None:
        st.info(f"Enter a budget of at least {fmt_kes(settings.min_budget)} and press Generate.")
    else:
        render_plan(plan)
        render_plan_actions(plan)

elif mode == "Prompts & visuals":
    plan = current_plan()
    if plan is None:
        st.warning("Generate a plan first.")
    else:
        st.subheader("AI visual prompts")
        st.caption(f"{plan.style} style • {plan.roofing} • {plan.interior_finish} • {plan.size}m²")
        prompts = list(st.session_state.get("prompt_variations") or plan.ai_prompts)
        for i, prompt in enumerate(prompts, 1):
            st.text_area(f"Prompt variation {i}", value=prompt, height=110, key=f"prompt_{i}_{hash(prompt)}")

        p1, p2 = st.columns(2)
        if p1.button("New prompt variations"):
            with st.spinner("Writing prompts..."):
                result = generate_prompt_variations(plan, plan.location or "Kenya", client=GeminiClient.from_settings())
            st.session_state["prompt_variations"] = result.prompts
            st.session_state["prompt_source"] = result.source
            st.rerun()

        if st.session_state.get("prompt_source") == "fallback":
            st.info("No AI provider available; showing template prompts.")

        if p2.button("Generate images"):
            try:
                with st.spinner("Rendering images..."):
                    visuals = generate_visuals(
                        prompts,
                        gemini=GeminiClient.from_settings(),
                        huggingface=HuggingFaceImageClient.from_settings(),
                    )
                st.session_state["images"] = visuals.images
            except ProviderError as e:
                st.error(str(e))

        images = st.session_state.get("images") or []
        if images:
            cols = st.columns(len(images))
            for col, image in zip(cols, images):
                col.image(image, use_container_width=True)

        st.markdown(
            "- Paste into ChatGPT with DALL-E 3, Midjourney (`/imagine`) or any Stable Diffusion UI\n"
            "- Add details like \"sunset lighting\" or \"lush garden\"\n"
            "- Try other camera angles: \"drone view\" or \"interior shot\""
        )

elif mode == "Journey":
    st.subheader("Your construction journey")
    plan_row = st.session_state.get("current_plan_row")
    done = completed_steps(plan_row, db_path=settings.db_path) if plan_row else st.session_state.setdefault("journey", {})
    if not plan_row:
        st.caption("Save your plan to keep journey progress between sessions.")

    progress = journey_progress(done)
    st.progress(progress.percent / 100, text=f"{progress.completed}/{progress.total} complete")

    for i, step in enumerate(JOURNEY_STEPS, 1):
        with st.expander(f"{'✓' if done.get(step.id) else i}. {step.title}  •  {step.cost_range}  •  {step.time_estimate}"):
            st.write(step.description)
            checked = st.checkbox("Completed", value=bool(done.get(step.id)), key=f"step_{step.id}")
            r, t = st.columns(2)
            r.markdown("**Requirements**\n" + "\n".join(f"- {req}" for req in step.requirements))
            t.markdown("**Expert tips**\n" + "\n".join(f"- {tip}" for tip in step.tips))

            if checked != bool(done.get(step.id)):
                if plan_row:
                    save_progress(plan_row, step.id, step.title, checked, db_path=settings.db_path)
                else:
                    st.session_state["journey"][step.id] = checked
                st.rerun()

    st.info(
        "This journey typically takes 6-18 months depending on your house size and complexity. "
        "Budget an extra 10-15% for unexpected costs and delays."
    )

elif mode == "Saved plans":
    plans = get_plans(limit=50, db_path=settings.db_path)
    if not plans:
        st.warning("No saved plans yet. Generate one and press Save.")
    else:
        table = pd.DataFrame(
            [
                {
                    "#": p["id"],
                    "house type": p["house_type"],
                    "budget": fmt_kes(p["budget"]),
                    "size m²": p["size"],
                    "location": p["location"] or "",
                    "saved": p["created_at"],
                }
                for p in plans
            ]
        )
        st.dataframe(table, use_container_width=True, hide_index=True)

        options = {f"#{p['id']} • {p['house_type']} • {fmt_kes(p['budget'])}": p["id"] for p in plans}
        label = st.selectbox("Select a plan", list(options))
        row_id = options[label]

        l1, l2 = st.columns(2)
        if l1.button("Open", type="primary"):
            saved = get_plan(row_id, db_path=settings.db_path)
            if saved:
                set_current_plan(saved, row_id)
                st.success("Loaded. Switch to the Plan page to view it.")
        if l2.button("Delete"):
            delete_plan(row_id, db_path=settings.db_path)
            if st.session_state.get("current_plan_row") == row_id:
                st.session_state["current_plan_row"] = None
            st.rerun()

else:
    st.subheader("About")
    st.write(
        "Plans are drawn from your budget: the same budget gives the same plan for the rest of the hour. "
        "Costs use 2024-2025 Kenyan price ranges and are estimates only. AI plans use Google Gemini when "
        "GOOGLE_API_KEY is set and fall back to a template whose costs add up exactly to your budget."
    )
    st.json(
        {
            "gemini configured": bool(settings.google_api_key),
            "hugging face configured": bool(settings.huggingface_token),
            "database": str(settings.db_path),
        }
    )
