"""
contract_conduit.pdf

Server-side rendering of CMA presentations.
"""

from contract_conduit.pdf.report import ReportOptions, render_cma_pdf

__all__ = ["ReportOptions", "render_cma_pdf"]
