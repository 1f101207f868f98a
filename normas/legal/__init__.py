"""
Pipeline de legislacao: crawl → parse → reconcile → embeddings.

Use imports explicitos nos arquivos que precisam:
  from normas.legal.gba_parser import parse_listing_page
  from normas.legal.crawl_runner import CrawlRunner
"""
