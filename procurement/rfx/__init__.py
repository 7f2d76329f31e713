# CUI // SP-PROPIN
"""RFX proposal comparison engine: service layer.

Modules:
    models             - Price / RFPSpec / ExtractedProposal / Comparison* value objects
    currency           - free-form price string → canonical Price (never converts)
    heuristics         - regex safety-net field extraction from raw proposal text
    document_loader    - PDF (pypdf) / DOCX (python-docx) / text decoding
    llm_bridge         - injectable model client + tolerant JSON output parser
    proposal_extractor - one proposal document → validated ExtractedProposal
    comparison_engine  - RFP + N proposals → reconciled ComparisonOutcome
    rfp_builder        - free-text procurement need → RFPSpec
    pipeline           - batch orchestration (load → extract × N → compare)
    result_store       - SQLite persistence of RFPs and comparison batches
"""
