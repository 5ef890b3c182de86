"""
Palm Fruit Console: Admin Dashboard & Agent Reporting

Analytics backend for a palm-fruit trading operation: field agents, cash
advances, fruit collections, expenses, customer orders and payments, all
held in a Supabase (PostgREST) project.

Pipeline:
    loaders.fetch  -> raw rows from the backend, fetched concurrently
    transforms     -> typed pandas fact/dimension frames
    kpis           -> pure aggregation (totals, outstanding, alerts, deliveries)
    dashboard      -> cards and tables for the Streamlit front end
    reports        -> printable per-agent and consolidated HTML statements

To run without a backend:
    Set PALM_DEMO_MODE=1 and the app reads from simulator.generate_dataset()
    instead of Supabase. The frame schemas are identical.

To add a KPI card:
    Compute it in kpis.aggregate_dashboard(), then add a card entry in
    dashboard.build_cards().
"""
