# Lead Enrichment Module
"""
This module owns the lead lifecycle.
Workflow:
1. Ingestion creates leads as pending
2. Findymail enrichment finds a verified email
3. AI enrichment researches the lead and generates copy
4. Upload pushes enriched leads to the destination
Workers claim batches of leads per stage; every run is recorded as a job.
"""
