"""
Test suite for the Opinion Drafting Assistant.

Organized by module:
- test_generation.py - LLM calls and JSON reply parsing
- test_interview.py - Interview questions, summaries and completeness
- test_research.py - Legal research and document search
- test_agents.py - Analysis, drafting and review agents
- test_section_generator.py - Per-section question threads
- test_orchestrator.py - Phase detection and message routing
- test_knowledge.py - Opinion store and vector store
- test_ingestion.py - Document loading and chunking
- test_llm_factory.py - Settings and model backends
- test_api.py - FastAPI endpoint tests
"""

# Test fixtures are provided in conftest.py
