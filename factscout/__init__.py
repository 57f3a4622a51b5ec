"""FactScout: structured fact extraction and bounded crawling of live web pages."""
