"""조회·감지·추출 파이프라인."""
